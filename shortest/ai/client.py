"""Claude API client wrapper used by the action planner."""

from __future__ import annotations

import json
import logging
import os
import re
import time
from pathlib import Path
from typing import Any, Optional

import anthropic

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json|)?\s*\n(.*?)\n```\s*$", re.DOTALL | re.MULTILINE)


class AIClient:
    """Wrapper around the Anthropic Messages API.

    Every exchange is written to ``debug_dir`` when one is configured, so a
    misbehaving step can be replayed by reading the prompt/response pair.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 1024,
        debug_dir: Optional[Path] = None,
    ):
        api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise EnvironmentError(
                "ANTHROPIC_API_KEY is not set. Add it to .env.local or "
                "the anthropic_api_key config field."
            )
        self.client = anthropic.Anthropic(api_key=api_key, timeout=120.0)
        self.model = model
        self.max_tokens = max_tokens
        self.debug_dir = debug_dir
        self._call_count = 0

    @property
    def call_count(self) -> int:
        return self._call_count

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        image_base64: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.2,
    ) -> str:
        """Send one message (optionally with a PNG screenshot) and return the text."""
        self._call_count += 1
        tokens = max_tokens or self.max_tokens
        logger.debug(
            "Calling AI (call #%d, model=%s, image=%s)",
            self._call_count, self.model, image_base64 is not None,
        )

        content: list[dict[str, Any]] = []
        if image_base64:
            content.append({
                "type": "image",
                "source": {"type": "base64", "media_type": "image/png", "data": image_base64},
            })
        content.append({"type": "text", "text": user_message})
        logged_message = f"[IMAGE ATTACHED]\n{user_message}" if image_base64 else user_message

        try:
            call_start = time.time()
            response = self.client.messages.create(
                model=self.model,
                max_tokens=tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": content}],
            )
            text = next((block.text for block in response.content
                         if getattr(block, "type", None) == "text"), None)
            if text is None:
                self._save_exchange_log(system_prompt, logged_message, "",
                                        error="response contained no text block")
                raise ValueError(
                    f"AI response contained no text block (stop_reason={response.stop_reason})")
            logger.debug("AI response received in %.1fs (%d chars)",
                         time.time() - call_start, len(text))
            if response.stop_reason == "max_tokens":
                logger.warning("AI response truncated at max_tokens=%d", tokens)
            self._save_exchange_log(system_prompt, logged_message, text)
            return text
        except anthropic.APIError as e:
            logger.error("Claude API error: %s", e)
            self._save_exchange_log(system_prompt, logged_message, "", error=str(e))
            raise

    def complete_json(
        self,
        system_prompt: str,
        user_message: str,
        image_base64: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> dict[str, Any]:
        """Send a request and parse the response as a JSON object."""
        text = self.complete(system_prompt, user_message, image_base64, max_tokens)
        return self.parse_json_response(text)

    # ------------------------------------------------------------------
    # JSON parsing with LLM quirk handling
    # ------------------------------------------------------------------

    def parse_json_response(self, text: str) -> dict[str, Any]:
        """Parse a model reply as JSON, tolerating fences, prose, and trailing commas."""
        cleaned = text.strip()
        match = _FENCE_RE.search(cleaned)
        if match:
            cleaned = match.group(1).strip()

        try:
            data = json.loads(cleaned, strict=False)
        except json.JSONDecodeError:
            first = cleaned.find("{")
            last = cleaned.rfind("}")
            candidate = cleaned[first:last + 1] if first != -1 and last > first else cleaned
            candidate = re.sub(r",\s*([}\]])", r"\1", candidate)
            try:
                data = json.loads(candidate, strict=False)
            except json.JSONDecodeError as e:
                logger.error("Failed to parse AI response as JSON: %s", e)
                self._save_parse_failure(text, str(e))
                raise ValueError(f"AI returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"AI returned JSON {type(data).__name__}, expected an object")
        return data

    # ------------------------------------------------------------------
    # Debug logging
    # ------------------------------------------------------------------

    def _debug_file(self, prefix: str) -> Path | None:
        if self.debug_dir is None:
            return None
        self.debug_dir.mkdir(parents=True, exist_ok=True)
        ts = time.strftime("%Y%m%d_%H%M%S")
        return self.debug_dir / f"{prefix}_{ts}_{self._call_count:03d}.log"

    def _save_exchange_log(
        self,
        system_prompt: str,
        user_message: str,
        response_text: str,
        error: str | None = None,
    ) -> None:
        log_file = self._debug_file("ai_call")
        if log_file is None:
            return
        try:
            with open(log_file, "w", encoding="utf-8") as f:
                f.write(f"=== AI CALL #{self._call_count} ({self.model}) ===\n\n")
                f.write(f"=== SYSTEM PROMPT ({len(system_prompt)} chars) ===\n{system_prompt}\n\n")
                f.write(f"=== USER MESSAGE ({len(user_message)} chars) ===\n{user_message}\n\n")
                f.write(f"=== RESPONSE ({len(response_text)} chars) ===\n")
                f.write(response_text or "(empty)")
                if error:
                    f.write(f"\n\n=== ERROR ===\n{error}\n")
            logger.debug("AI exchange logged to %s", log_file)
        except OSError as log_err:
            logger.debug("Failed to save AI exchange log: %s", log_err)

    def _save_parse_failure(self, raw_response: str, error: str) -> None:
        fail_file = self._debug_file("parse_failure")
        if fail_file is None:
            return
        try:
            with open(fail_file, "w", encoding="utf-8") as f:
                f.write(f"=== JSON PARSE FAILURE (call #{self._call_count}) ===\n\n")
                f.write(f"Error: {error}\n\n")
                f.write(f"=== RAW RESPONSE ({len(raw_response)} chars) ===\n{raw_response}\n")
            logger.error("JSON parse failure details saved to %s", fail_file)
        except OSError as log_err:
            logger.error("Failed to save parse failure log: %s", log_err)
