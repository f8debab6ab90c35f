"""Confidence evaluation: how many attempts a test gets and how they combine.

The "confidence levels" are a fixed-repetition pass-threshold scheme, not a
statistical confidence interval: each level maps to an attempt count N and
a required number of passing attempts R = ceil(level * N).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_CEILING, Decimal
from typing import Awaitable, Callable, Optional

from shortest.errors import InvalidConfidenceLevel
from shortest.models.test_definition import ConfidenceLevel
from shortest.models.test_result import RunOutcome

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS: dict[ConfidenceLevel, int] = {
    ConfidenceLevel.P80: 5,
    ConfidenceLevel.P95: 5,
    ConfidenceLevel.P99: 5,
    ConfidenceLevel.P99_9: 5,
    ConfidenceLevel.P100: 1,
}


@dataclass(frozen=True)
class ConfidencePolicy:
    level: ConfidenceLevel
    attempts: int
    required_passes: int

    @property
    def max_failures(self) -> int:
        return self.attempts - self.required_passes


@dataclass
class ConfidenceVerdict:
    policy: ConfidencePolicy
    outcomes: list[RunOutcome] = field(default_factory=list)

    @property
    def passes(self) -> int:
        return sum(1 for o in self.outcomes if o.passed)

    @property
    def failures(self) -> int:
        return len(self.outcomes) - self.passes

    @property
    def passed(self) -> bool:
        return bool(self.outcomes) and self.passes >= self.policy.required_passes

    @property
    def pass_rate(self) -> float:
        return self.passes / len(self.outcomes) if self.outcomes else 0.0


class ConfidenceEvaluator:
    """Runs attempts sequentially until the verdict is decided."""

    def __init__(self, attempts_table: Optional[dict[str, int]] = None):
        self.table = dict(DEFAULT_ATTEMPTS)
        for raw_level, attempts in (attempts_table or {}).items():
            level = ConfidenceLevel.parse(raw_level)
            if level is ConfidenceLevel.P100 and attempts != 1:
                logger.warning("Ignoring attempt override for 100%% confidence (always one attempt)")
                continue
            self.table[level] = attempts

    def policy_for(self, level: ConfidenceLevel) -> ConfidencePolicy:
        attempts = self.table.get(level, 0)
        if attempts <= 0:
            raise InvalidConfidenceLevel(
                f"Confidence level {level.label} resolves to {attempts} attempts", level.value
            )
        required = int((level.ratio * Decimal(attempts)).to_integral_value(rounding=ROUND_CEILING))
        return ConfidencePolicy(level=level, attempts=attempts, required_passes=required)

    async def evaluate(
        self,
        level: ConfidenceLevel,
        run_attempt: Callable[[int], Awaitable[RunOutcome]],
    ) -> ConfidenceVerdict:
        """Call ``run_attempt(n)`` for n = 1..N, stopping once the verdict is fixed."""
        policy = self.policy_for(level)
        verdict = ConfidenceVerdict(policy=policy)
        logger.debug("Confidence %s: up to %d attempts, %d must pass",
                     level.label, policy.attempts, policy.required_passes)

        for attempt in range(1, policy.attempts + 1):
            outcome = await run_attempt(attempt)
            verdict.outcomes.append(outcome)

            if verdict.passes >= policy.required_passes:
                break
            if verdict.failures > policy.max_failures:
                break

        if len(verdict.outcomes) < policy.attempts:
            logger.debug("Confidence verdict decided after %d/%d attempts",
                         len(verdict.outcomes), policy.attempts)
        return verdict
