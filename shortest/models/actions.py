"""Browser action records, plans, and cached plan entries."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

ActionKind = Literal["navigate", "click", "type", "press", "wait", "assert"]


class ActionRecord(BaseModel):
    kind: ActionKind
    locator: Optional[str] = None
    value: Optional[str] = None  # may contain {{param}} / {{totp_code}} tokens
    description: str = ""
    # Captured after the action ran
    page_url: str = ""
    page_fingerprint: str = ""


class ActionPlan(BaseModel):
    """Ordered actions that satisfied a step."""

    actions: list[ActionRecord] = Field(default_factory=list)
    final_url: str = ""  # page URL when the step was judged satisfied

    def __len__(self) -> int:
        return len(self.actions)


class CacheEntry(BaseModel):
    fingerprint: str
    plan: ActionPlan
    timestamp: float
    success: bool = True
    test_identity: str = ""
    step_intent: str = ""


class PageState(BaseModel):
    """What the browser shows after an action: fed back to the AI."""

    url: str = ""
    title: str = ""
    dom_summary: str = ""
    screenshot_b64: Optional[str] = None
    fingerprint: str = ""


class Decision(BaseModel):
    """AI collaborator answer: either a next action or a verdict."""

    action: Optional[ActionRecord] = None
    verdict: Optional[Literal["pass", "fail"]] = None
    reason: str = ""

    @property
    def is_verdict(self) -> bool:
        return self.verdict is not None
