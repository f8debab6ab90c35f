"""AI action planner: turns one natural-language step into verified browser state."""

from __future__ import annotations

import logging
import re
import time
from enum import Enum
from typing import Callable, Optional

from shortest.auth.totp import TOTPGenerator
from shortest.browser.actuator import BrowserActuator, perform
from shortest.cache.action_cache import ActionCache, step_fingerprint
from shortest.errors import (
    ActuationError,
    AIDecisionError,
    AssertionFailed,
    InvalidSecretError,
    PlanningTimeout,
    RunCancelled,
    StepError,
)
from shortest.models.actions import ActionPlan, ActionRecord, Decision, PageState
from shortest.models.test_definition import AssertionHint, Step, TestDefinition
from shortest.models.test_result import StepResult

from .decider import ActionDecider

logger = logging.getLogger(__name__)

# Placeholder tokens written by the AI in action values, e.g. {{password}}.
# They are substituted right before actuation; recorded plans keep the token.
_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")
TOTP_PLACEHOLDER = "totp_code"
TOTP_SECRET_PARAM = "totp_secret"


class PlannerState(str, Enum):
    PLANNING = "planning"
    ACTUATING = "actuating"
    OBSERVING = "observing"
    VERIFYING = "verifying"
    DONE = "done"


class AIActionPlanner:
    """Cache-first, AI-fallback executor for individual steps.

    A cached plan is replayed verbatim and verified without the decision
    loop. If any replayed action fails (or verification fails), the entry
    is invalidated and the step is planned from scratch.
    """

    def __init__(
        self,
        decider: ActionDecider,
        actuator: BrowserActuator,
        cache: ActionCache,
        totp: Optional[TOTPGenerator] = None,
        totp_secret: Optional[str] = None,
        max_iterations: int = 15,
        verify_replay_with_ai: bool = False,
        should_stop: Optional[Callable[[], bool]] = None,
    ):
        self.decider = decider
        self.actuator = actuator
        self.cache = cache
        self.totp = totp or TOTPGenerator()
        self.totp_secret = totp_secret
        self.max_iterations = max_iterations
        self.verify_replay_with_ai = verify_replay_with_ai
        self.should_stop = should_stop or (lambda: False)

    async def run_step(self, test: TestDefinition, step_index: int, step: Step) -> StepResult:
        """Execute one step. Step-level errors are returned in the StepResult."""
        start = time.time()
        fingerprint = step_fingerprint(test, step_index, step)
        result = StepResult(step_index=step_index, intent=step.intent)

        try:
            entry = self.cache.get(fingerprint)
            if entry is not None:
                logger.debug("Step %d: cache hit (%d actions), replaying",
                             step_index + 1, len(entry.plan))
                try:
                    result.ai_calls = await self._replay(entry.plan, step)
                    result.source = "cache"
                    result.actions = list(entry.plan.actions)
                    result.status = "pass"
                    logger.debug("Step %d: replay verified", step_index + 1)
                    return result
                except (InvalidSecretError, AIDecisionError):
                    raise
                except StepError as e:
                    logger.info("Step %d: cached plan no longer works (%s), re-planning",
                                step_index + 1, e.message)
                    self.cache.invalidate(fingerprint)
                    result.cache_invalidated = True
            elif self.cache.enabled:
                logger.debug("Step %d: no cached plan", step_index + 1)

            plan, iterations, ai_calls = await self._plan(step)
            result.source = "ai"
            result.actions = list(plan.actions)
            result.iterations = iterations
            result.ai_calls += ai_calls
            result.status = "pass"
            self.cache.put(fingerprint, plan, test_identity=test.identity, step_intent=step.intent)
            return result

        except StepError as e:
            result.status = "fail"
            result.error_type = type(e).__name__
            result.error_message = e.message
            logger.debug("Step %d failed: %s: %s", step_index + 1, result.error_type, e)
            return result
        finally:
            result.duration_seconds = round(time.time() - start, 2)

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def _replay(self, plan: ActionPlan, step: Step) -> int:
        """Run a cached plan and verify it. Returns the number of AI calls used."""
        for recorded in plan.actions:
            await perform(self.actuator, self.resolve_action(recorded, step))
            self._checkpoint()

        if step.assertion is not None:
            await self._check_hint(step.assertion)
            return 0

        state = await self.actuator.capture_state(with_screenshot=self.verify_replay_with_ai)
        if self.verify_replay_with_ai:
            decision = self.decider.verify(step.intent, state)
            if decision.verdict != "pass":
                raise AssertionFailed(f"Replay verification failed: {decision.reason}")
            return 1

        if plan.final_url and _normalize_url(state.url) != _normalize_url(plan.final_url):
            raise AssertionFailed(
                f"Replay ended on {state.url}, expected {plan.final_url}",
                {"expected_url": plan.final_url, "actual_url": state.url},
            )
        return 0

    # ------------------------------------------------------------------
    # Full planning: decide -> act -> observe
    # ------------------------------------------------------------------

    async def _plan(self, step: Step) -> tuple[ActionPlan, int, int]:
        history: list[ActionRecord] = []
        prompt_history: list[dict] = []
        iterations = 0
        ai_calls = 0
        decision: Decision | None = None
        pending: ActionRecord | None = None
        parameter_names = self._parameter_names(step)
        hint_text = f"{step.assertion.kind}: {step.assertion.value}" if step.assertion else None

        observation: PageState = await self.actuator.capture_state()
        state = PlannerState.PLANNING

        while True:
            match state:
                case PlannerState.PLANNING:
                    if iterations >= self.max_iterations:
                        raise PlanningTimeout(
                            f"Step not satisfied after {iterations} planning iterations",
                            iterations,
                        )
                    iterations += 1
                    ai_calls += 1
                    decision = self.decider.decide(
                        step.intent, prompt_history, observation,
                        parameter_names=parameter_names, assertion_hint=hint_text,
                    )
                    if decision.is_verdict:
                        state = PlannerState.VERIFYING
                    else:
                        pending = decision.action
                        state = PlannerState.ACTUATING

                case PlannerState.ACTUATING:
                    # Actuation errors fail the step; no retry within an attempt
                    await perform(self.actuator, self.resolve_action(pending, step))
                    state = PlannerState.OBSERVING

                case PlannerState.OBSERVING:
                    observation = await self.actuator.capture_state()
                    history.append(pending.model_copy(update={
                        "page_url": observation.url,
                        "page_fingerprint": observation.fingerprint,
                    }))
                    prompt_history.append(_history_entry(pending, f"now on {observation.url}"))
                    # Natural checkpoint: the action has fully completed
                    self._checkpoint()
                    state = PlannerState.PLANNING

                case PlannerState.VERIFYING:
                    if decision.verdict == "fail":
                        raise AssertionFailed(decision.reason or "AI judged the intent unsatisfiable")
                    if step.assertion is not None:
                        await self._check_hint(step.assertion)
                    state = PlannerState.DONE

                case PlannerState.DONE:
                    logger.debug("Planned %d actions in %d iterations", len(history), iterations)
                    plan = ActionPlan(actions=history, final_url=observation.url)
                    return plan, iterations, ai_calls

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def resolve_action(self, action: ActionRecord, step: Step) -> ActionRecord:
        """Substitute {{name}} tokens in the action value.

        ``{{totp_code}}`` is generated here, immediately before the action
        that consumes it, so the code cannot expire while the AI deliberates.
        """
        if not action.value or not _PLACEHOLDER_RE.search(action.value):
            return action

        def _replace(match: re.Match) -> str:
            name = match.group(1)
            if name == TOTP_PLACEHOLDER:
                secret = step.params.get(TOTP_SECRET_PARAM) or self.totp_secret
                return self.totp.generate(secret).code
            if name in step.params:
                return step.params[name]
            raise ActuationError(f"Unknown placeholder {{{{{name}}}}} in action value",
                                 action.kind, action.locator)

        return action.model_copy(update={"value": _PLACEHOLDER_RE.sub(_replace, action.value)})

    def _parameter_names(self, step: Step) -> list[str]:
        names = [name for name in step.params if name != TOTP_SECRET_PARAM]
        if step.params.get(TOTP_SECRET_PARAM) or self.totp_secret:
            names.append(TOTP_PLACEHOLDER)
        return names

    async def _check_hint(self, hint: AssertionHint) -> None:
        match hint.kind:
            case "url_contains":
                if not await self.actuator.url_contains(hint.value):
                    raise AssertionFailed(f"URL does not contain {hint.value!r}")
            case "text_visible":
                await self.actuator.check(f"text={hint.value}")
            case "element_visible":
                await self.actuator.check(hint.value)
            case "title_contains":
                state = await self.actuator.capture_state(with_screenshot=False)
                if hint.value.lower() not in state.title.lower():
                    raise AssertionFailed(f"Page title {state.title!r} does not contain {hint.value!r}")
            case _:
                raise AssertionFailed(f"Unsupported assertion kind: {hint.kind}")

    def _checkpoint(self) -> None:
        if self.should_stop():
            raise RunCancelled("Run cancelled")


def _normalize_url(url: str) -> str:
    return url.split("#", 1)[0].rstrip("/")


def _history_entry(action: ActionRecord, result: str) -> dict:
    return {
        "kind": action.kind,
        "locator": action.locator,
        "value": action.value,
        "result": result,
    }
