"""AI collaborator: turns (intent, history, page state) into a Decision."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import anthropic
from pydantic import ValidationError

from shortest.ai.client import AIClient
from shortest.ai.prompts.decision import DECISION_SYSTEM_PROMPT, build_decision_prompt
from shortest.ai.prompts.verification import (
    VERIFICATION_SYSTEM_PROMPT,
    build_verification_prompt,
)
from shortest.errors import AIDecisionError
from shortest.models.actions import ActionRecord, Decision, PageState

logger = logging.getLogger(__name__)

# Names models tend to use for the action kinds we support.
_KIND_ALIASES = {
    "fill": "type",
    "input": "type",
    "goto": "navigate",
    "open": "navigate",
    "key": "press",
    "keyboard": "press",
    "wait_for": "wait",
    "verify": "assert",
    "expect": "assert",
}


class ActionDecider(Protocol):
    """Interface of the AI collaborator consumed by the planner."""

    def decide(
        self,
        intent: str,
        history: list[dict],
        state: PageState,
        parameter_names: Optional[list[str]] = None,
        assertion_hint: Optional[str] = None,
    ) -> Decision: ...

    def verify(self, intent: str, state: PageState) -> Decision: ...


def parse_decision(data: dict[str, Any]) -> Decision:
    """Validate a raw JSON decision from the model."""
    verdict = data.get("verdict")
    if isinstance(verdict, str):
        verdict = verdict.strip().lower()
        if verdict not in ("pass", "fail"):
            raise AIDecisionError(f"Unknown verdict from AI: {verdict!r}")
        return Decision(verdict=verdict, reason=str(data.get("reason", "")))

    raw_action = data.get("action")
    if not isinstance(raw_action, dict):
        raise AIDecisionError("AI answer contained neither an action nor a verdict",
                              {"answer": data})
    raw_action = dict(raw_action)
    kind = str(raw_action.get("kind") or raw_action.get("action_type") or "").lower()
    raw_action["kind"] = _KIND_ALIASES.get(kind, kind)
    raw_action.pop("action_type", None)
    if raw_action.get("locator") is None and raw_action.get("selector"):
        raw_action["locator"] = raw_action.pop("selector")
    raw_action.pop("selector", None)
    if raw_action.get("value") is not None:
        raw_action["value"] = str(raw_action["value"])
    try:
        action = ActionRecord(**raw_action)
    except ValidationError as e:
        raise AIDecisionError(f"AI proposed an invalid action: {e.errors()[0]['msg']}",
                              {"action": raw_action}) from e
    return Decision(action=action, reason=str(data.get("reason", "")))


class AIDecider:
    """Claude-backed implementation of :class:`ActionDecider`."""

    def __init__(self, ai_client: AIClient, base_url: str, use_screenshots: bool = True):
        self.ai_client = ai_client
        self.base_url = base_url
        self.use_screenshots = use_screenshots

    def decide(
        self,
        intent: str,
        history: list[dict],
        state: PageState,
        parameter_names: Optional[list[str]] = None,
        assertion_hint: Optional[str] = None,
    ) -> Decision:
        user_message = build_decision_prompt(
            intent=intent,
            history=history,
            url=state.url,
            title=state.title,
            dom_summary=state.dom_summary,
            base_url=self.base_url,
            parameter_names=parameter_names or [],
            assertion_hint=assertion_hint,
        )
        data = self._ask(DECISION_SYSTEM_PROMPT, user_message, state)
        decision = parse_decision(data)
        if decision.is_verdict:
            logger.debug("AI verdict: %s (%s)", decision.verdict, decision.reason)
        else:
            logger.debug("AI next action: %s %s", decision.action.kind,
                         decision.action.locator or decision.action.value or "")
        return decision

    def verify(self, intent: str, state: PageState) -> Decision:
        user_message = build_verification_prompt(intent, state.url, state.title, state.dom_summary)
        decision = parse_decision(self._ask(VERIFICATION_SYSTEM_PROMPT, user_message, state))
        if not decision.is_verdict:
            raise AIDecisionError("AI verification did not return a verdict")
        return decision

    def _ask(self, system_prompt: str, user_message: str, state: PageState) -> dict[str, Any]:
        image = state.screenshot_b64 if self.use_screenshots else None
        try:
            return self.ai_client.complete_json(system_prompt, user_message, image_base64=image)
        except anthropic.APIError as e:
            raise AIDecisionError(f"AI call failed: {e}") from e
        except ValueError as e:
            raise AIDecisionError(f"AI response could not be parsed: {e}") from e
