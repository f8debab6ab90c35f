"""Action cache: persists successful action plans per step fingerprint."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Optional

from shortest.models.actions import ActionPlan, CacheEntry
from shortest.models.test_definition import Step, TestDefinition

logger = logging.getLogger(__name__)

CACHE_VERSION = 1


def step_fingerprint(test: TestDefinition, step_index: int, step: Step) -> str:
    """Stable cache key for one step of one test.

    Parameter values are part of the key so that changing credentials
    or inputs never replays a plan recorded for different data.
    """
    payload = {
        "v": CACHE_VERSION,
        "test": test.identity,
        "index": step_index,
        "intent": step.intent,
        "params": sorted(step.params.items()),
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ActionCache:
    """JSON-file backed store of fingerprint -> CacheEntry.

    When ``enabled`` is False every lookup misses and writes are no-ops.
    """

    def __init__(self, cache_path: Path, enabled: bool = True):
        self.path = cache_path
        self.enabled = enabled
        self._entries: dict[str, CacheEntry] | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        if not self.enabled:
            return None
        entry = self._load().get(fingerprint)
        if entry is not None and not entry.success:
            return None
        return entry

    def put(
        self,
        fingerprint: str,
        plan: ActionPlan,
        test_identity: str = "",
        step_intent: str = "",
    ) -> None:
        if not self.enabled:
            return
        with self._lock:
            entries = self._load()
            entries[fingerprint] = CacheEntry(
                fingerprint=fingerprint,
                plan=plan,
                timestamp=time.time(),
                success=True,
                test_identity=test_identity,
                step_intent=step_intent,
            )
            self._save(entries)
        logger.debug("Cached %d-action plan for %s", len(plan), fingerprint[:12])

    def invalidate(self, fingerprint: str) -> None:
        if not self.enabled:
            return
        with self._lock:
            entries = self._load()
            if entries.pop(fingerprint, None) is not None:
                self._save(entries)
                logger.debug("Invalidated cache entry %s", fingerprint[:12])

    def clear(self) -> int:
        """Remove every entry (regardless of ``enabled``). Returns the count removed."""
        with self._lock:
            count = len(self._load())
            self._entries = {}
            if self.path.exists():
                self.path.unlink()
        logger.info("Action cache cleared (%d entries)", count)
        return count

    def __len__(self) -> int:
        if not self.enabled:
            return 0
        return len(self._load())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, CacheEntry]:
        if self._entries is not None:
            return self._entries
        self._entries = {}
        if not self.path.exists():
            return self._entries
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load action cache %s: %s. Starting empty.", self.path, e)
            return self._entries

        if data.get("version") != CACHE_VERSION:
            logger.info("Action cache version changed, discarding %s", self.path)
            return self._entries

        for key, raw in data.get("entries", {}).items():
            try:
                self._entries[key] = CacheEntry(**raw)
            except (TypeError, ValueError) as e:
                logger.debug("Skipping malformed cache entry %s: %s", key[:12], e)
        return self._entries

    def _save(self, entries: dict[str, CacheEntry]) -> None:
        """Write atomically: temp file in the same directory, then replace."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": CACHE_VERSION,
            "entries": {k: v.model_dump() for k, v in entries.items()},
        }
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".cache-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
