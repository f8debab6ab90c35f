"""Exception hierarchy for the test execution engine."""

from __future__ import annotations

from typing import Any, Optional


class ShortestError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Fatal errors -- abort the whole run


class InitializationError(ShortestError):
    """Raised when the browser session cannot be established."""


class ConfigError(ShortestError):
    """Raised for invalid or incomplete configuration."""


class InvalidConfidenceLevel(ConfigError):
    """Raised when a confidence level is unknown or resolves to zero attempts."""

    def __init__(self, message: str, level: Any = None):
        super().__init__(message, {"level": level} if level is not None else None)
        self.level = level


class RunCancelled(ShortestError):
    """Raised at a checkpoint after cancellation was requested."""


class TestDefinitionError(ShortestError):
    """Raised when a test file cannot be parsed into test definitions."""

    __test__ = False

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, {"path": path} if path else None)
        self.path = path


# Step-level errors -- fail the current step and attempt only


class StepError(ShortestError):
    """Base class for failures recorded as a step's failure reason."""


class ActuationError(StepError):
    """Raised when a browser primitive fails (element not found, timeout, ...)."""

    def __init__(
        self,
        reason: str,
        action_kind: Optional[str] = None,
        locator: Optional[str] = None,
    ):
        details = {}
        if action_kind:
            details["action"] = action_kind
        if locator:
            details["locator"] = locator
        super().__init__(reason, details)
        self.reason = reason
        self.action_kind = action_kind
        self.locator = locator


class AssertionFailed(StepError):
    """Raised when the AI or a browser check determined the intent is false."""


class PlanningTimeout(StepError):
    """Raised when the decide/act/observe loop exceeds its iteration bound."""

    def __init__(self, message: str, iterations: int):
        super().__init__(message, {"iterations": iterations})
        self.iterations = iterations


class InvalidSecretError(StepError):
    """Raised when a TOTP secret is missing or not valid base32."""


class AIDecisionError(StepError):
    """Raised when the AI collaborator fails or returns an unusable answer."""
