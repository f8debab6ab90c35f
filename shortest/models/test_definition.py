"""Test definitions loaded from test files."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shortest.errors import InvalidConfidenceLevel


class ConfidenceLevel(str, Enum):
    """Required pass-rate across repeated attempts of one test."""

    P80 = "80"
    P95 = "95"
    P99 = "99"
    P99_9 = "99.9"
    P100 = "100"

    @property
    def ratio(self) -> Decimal:
        return Decimal(self.value) / Decimal(100)

    @property
    def label(self) -> str:
        return f"{self.value}%"

    @classmethod
    def parse(cls, raw: Any) -> "ConfidenceLevel":
        """Accept 80, "95%", 0.99, "99.9", 100 and ConfidenceLevel values."""
        if isinstance(raw, cls):
            return raw
        if raw is None or isinstance(raw, bool):
            raise InvalidConfidenceLevel(f"Invalid confidence level: {raw!r}", raw)
        text = str(raw).strip().rstrip("%").strip()
        try:
            number = Decimal(text)
        except InvalidOperation:
            raise InvalidConfidenceLevel(f"Invalid confidence level: {raw!r}", raw) from None
        # Fractions such as 0.95 are read as proportions
        if number <= 1 and not str(raw).strip().endswith("%"):
            number *= 100
        for level in cls:
            if Decimal(level.value) == number:
                return level
        allowed = ", ".join(level.label for level in cls)
        raise InvalidConfidenceLevel(
            f"Unsupported confidence level {raw!r} (expected one of {allowed})", raw
        )


class AssertionHint(BaseModel):
    """Structured check used to verify a step without the AI."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["url_contains", "text_visible", "element_visible", "title_contains"]
    value: str


class Step(BaseModel):
    """One natural-language instruction within a test."""

    model_config = ConfigDict(frozen=True)

    intent: str
    assertion: Optional[AssertionHint] = None
    params: dict[str, str] = Field(default_factory=dict)

    @field_validator("intent")
    @classmethod
    def intent_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Step intent must not be empty")
        return v.strip()


class TestDefinition(BaseModel):
    """A named, ordered sequence of steps with a required confidence level."""

    __test__ = False
    model_config = ConfigDict(frozen=True)

    source_path: str
    name: str
    steps: tuple[Step, ...] = ()
    confidence: Optional[ConfidenceLevel] = None
    skip: bool = False
    skip_reason: Optional[str] = None

    @property
    def identity(self) -> str:
        return f"{self.source_path}::{self.name}"

    @field_validator("confidence", mode="before")
    @classmethod
    def parse_confidence(cls, v: Any) -> Any:
        if v is None:
            return None
        return ConfidenceLevel.parse(v)
