"""Tests for the test runner: discovery, attempts, confidence, reporting."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from playwright.async_api import Error as PlaywrightError

from shortest.errors import ActuationError, InitializationError, InvalidConfidenceLevel
from shortest.models.actions import ActionRecord, Decision
from shortest.models.config import ShortestConfig
from shortest.models.test_result import StepResult
from shortest.runner.reporter import Reporter
from shortest.runner.test_runner import TestRunner


def _write_test(root: Path, name: str, payload) -> Path:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload))
    return path


def _step(index: int, passed: bool = True) -> StepResult:
    if passed:
        return StepResult(step_index=index, intent=f"step {index + 1}")
    return StepResult(step_index=index, intent=f"step {index + 1}", status="fail",
                      error_type="AssertionFailed", error_message="not satisfied")


def _mock_planner(results: list[StepResult]) -> Mock:
    planner = Mock()
    planner.run_step = AsyncMock(side_effect=results)
    return planner


TWO_STEP_TEST = {
    "name": "Sign in and reach the dashboard",
    "steps": [
        "Log in with the demo account",
        {"intent": "Open the dashboard", "assert": {"url_contains": "/dashboard"}},
    ],
}


@pytest.mark.asyncio
class TestEndToEnd:
    """Real planner and cache; browser and AI replaced by mocks."""

    async def _run(self, config, root, decider, session):
        async with TestRunner(config, root=root, decider=decider, session=session) as runner:
            summary = await runner.run_tests("**/*.test.json")
        return runner, summary

    async def test_first_run_plans_second_run_replays(self, config, tmp_path, mock_session, mock_actuator):
        _write_test(tmp_path, "auth/login.test.json", TWO_STEP_TEST)

        first = Mock()
        first.decide.side_effect = [
            Decision(action=ActionRecord(kind="click", locator="#demo-login")),
            Decision(verdict="pass"),
            Decision(action=ActionRecord(kind="click", locator="nav a.dashboard")),
            Decision(verdict="pass"),
        ]
        runner, summary = await self._run(config, tmp_path, first, mock_session)

        assert summary.passed == 1
        assert first.decide.call_count == 4
        assert len(runner.cache) == 2
        outcome = summary.test_results[0].outcomes[0]
        assert [s.source for s in outcome.step_results] == ["ai", "ai"]

        second = Mock()
        runner, summary = await self._run(config, tmp_path, second, mock_session)

        assert summary.passed == 1
        second.decide.assert_not_called()
        outcome = summary.test_results[0].outcomes[0]
        assert [s.source for s in outcome.step_results] == ["cache", "cache"]
        assert outcome.cache_hits == 2

    async def test_each_attempt_resets_session(self, config, tmp_path, mock_session):
        _write_test(tmp_path, "a.test.json", {"name": "A", "steps": ["Check the homepage"]})
        decider = Mock()
        decider.decide.return_value = Decision(verdict="pass")

        await self._run(config, tmp_path, decider, mock_session)

        mock_session.reset.assert_awaited_once()
        mock_session.close.assert_awaited_once()

    async def test_reset_failure_fails_attempt(self, config, tmp_path, mock_session):
        _write_test(tmp_path, "a.test.json", {"name": "A", "steps": ["Check the homepage"]})
        mock_session.reset.side_effect = ActuationError("Navigation failed", "navigate")
        decider = Mock()

        _, summary = await self._run(config, tmp_path, decider, mock_session)

        result = summary.test_results[0]
        assert result.result == "fail"
        assert "Navigation failed" in result.failure_reason
        decider.decide.assert_not_called()

    async def test_browser_fault_on_reset_does_not_abort_run(self, config, tmp_path, mock_session):
        _write_test(tmp_path, "a.test.json", {"name": "A", "steps": ["Check the homepage"]})
        _write_test(tmp_path, "b.test.json", {"name": "B", "steps": ["Check the pricing page"]})
        mock_session.reset.side_effect = [
            PlaywrightError("Target page, context or browser has been closed"),
            None,
        ]
        decider = Mock()
        decider.decide.return_value = Decision(verdict="pass")

        _, summary = await self._run(config, tmp_path, decider, mock_session)

        assert [r.result for r in summary.test_results] == ["fail", "pass"]
        assert summary.test_results[0].failure_reason.startswith("ActuationError:")
        assert "has been closed" in summary.test_results[0].failure_reason

    async def test_report_written(self, config, tmp_path, mock_session):
        _write_test(tmp_path, "a.test.json", {"name": "A", "steps": ["Check the homepage"]})
        decider = Mock()
        decider.decide.return_value = Decision(verdict="pass")

        _, summary = await self._run(config, tmp_path, decider, mock_session)

        report = tmp_path / ".shortest" / "reports" / f"report_{summary.run_id}.json"
        data = json.loads(report.read_text())
        assert data["passed"] == 1
        assert data["test_results"][0]["test_name"] == "A"


@pytest.mark.asyncio
class TestRunTests:
    """Runner orchestration with the planner mocked out."""

    async def test_requires_initialize(self, config, tmp_path):
        runner = TestRunner(config, root=tmp_path)
        with pytest.raises(InitializationError):
            await runner.run_tests()

    async def test_invalid_default_confidence_aborts(self, tmp_path):
        cfg = ShortestConfig(confidence="42")
        runner = TestRunner(cfg, root=tmp_path, planner=_mock_planner([]))
        with pytest.raises(InvalidConfidenceLevel):
            await runner.initialize()

    async def test_no_matches_is_empty_run(self, config, tmp_path):
        runner = TestRunner(config, root=tmp_path, planner=_mock_planner([]))
        await runner.initialize()

        summary = await runner.run_tests("**/*.test.json")

        assert summary.total_tests == 0
        assert summary.success

    async def test_fail_fast_within_attempt(self, config, tmp_path):
        _write_test(tmp_path, "a.test.json", {"name": "A", "steps": ["one", "two", "three"]})
        planner = _mock_planner([_step(0), _step(1, passed=False)])
        runner = TestRunner(config, root=tmp_path, planner=planner)
        await runner.initialize()

        summary = await runner.run_tests()

        assert planner.run_step.await_count == 2
        result = summary.test_results[0]
        assert result.result == "fail"
        assert result.failed_attempt == 1
        assert result.failed_step_index == 1
        assert result.failure_reason == "AssertionFailed: not satisfied"
        assert not summary.success

    async def test_eighty_percent_confidence(self, config, tmp_path):
        _write_test(tmp_path, "flaky.test.json",
                    {"name": "Flaky", "confidence": "80%", "steps": ["Do the thing"]})
        planner = _mock_planner([_step(0), _step(0), _step(0, passed=False), _step(0), _step(0)])
        runner = TestRunner(config, root=tmp_path, planner=planner)
        await runner.initialize()

        summary = await runner.run_tests()

        result = summary.test_results[0]
        assert result.result == "pass"
        assert result.attempts_run == 5
        assert result.passes == 4
        assert result.required_passes == 4

    async def test_default_confidence_from_config(self, tmp_path):
        _write_test(tmp_path, "a.test.json", {"name": "A", "steps": ["Do the thing"]})
        cfg = ShortestConfig(confidence="95")
        planner = _mock_planner([_step(0, passed=False)])
        runner = TestRunner(cfg, root=tmp_path, planner=planner)
        await runner.initialize()

        summary = await runner.run_tests()

        result = summary.test_results[0]
        assert result.confidence == "95"
        assert result.planned_attempts == 5
        assert result.attempts_run == 1

    async def test_load_error_reported_siblings_continue(self, config, tmp_path):
        (tmp_path / "broken.test.json").write_text("{not json")
        _write_test(tmp_path, "ok.test.json", {"name": "OK", "steps": ["Do the thing"]})
        runner = TestRunner(config, root=tmp_path, planner=_mock_planner([_step(0)]))
        await runner.initialize()

        summary = await runner.run_tests()

        assert summary.total_tests == 2
        assert summary.passed == 1
        assert summary.failed == 1
        broken = next(r for r in summary.test_results if r.result == "fail")
        assert broken.source_path == "broken.test.json"
        assert broken.failure_reason.startswith("TestDefinitionError")

    async def test_skipped_tests_not_run(self, config, tmp_path):
        _write_test(tmp_path, "a.test.json", {
            "tests": [
                {"name": "Skipped", "skip": True, "skip_reason": "WIP", "steps": ["x"]},
                {"name": "Runs", "steps": ["y"]},
            ],
        })
        planner = _mock_planner([_step(0)])
        runner = TestRunner(config, root=tmp_path, planner=planner)
        await runner.initialize()

        summary = await runner.run_tests()

        assert summary.skipped == 1
        assert summary.passed == 1
        assert planner.run_step.await_count == 1
        assert summary.test_results[0].failure_reason == "WIP"

    async def test_failing_test_does_not_stop_siblings(self, config, tmp_path):
        _write_test(tmp_path, "a.test.json", {"name": "A", "steps": ["x"]})
        _write_test(tmp_path, "b.test.json", {"name": "B", "steps": ["y"]})
        planner = _mock_planner([_step(0, passed=False), _step(0)])
        runner = TestRunner(config, root=tmp_path, planner=planner)
        await runner.initialize()

        summary = await runner.run_tests()

        assert [r.result for r in summary.test_results] == ["fail", "pass"]

    async def test_cancel_stops_run(self, config, tmp_path):
        _write_test(tmp_path, "a.test.json", {"name": "A", "steps": ["x"]})
        _write_test(tmp_path, "b.test.json", {"name": "B", "steps": ["y"]})
        runner = TestRunner(config, root=tmp_path, planner=_mock_planner([]))

        async def cancel_during_step(test, index, step):
            runner.cancel()
            return _step(index)

        runner.planner.run_step = AsyncMock(side_effect=cancel_during_step)
        await runner.initialize()

        summary = await runner.run_tests()

        assert summary.cancelled
        assert not summary.success
        assert runner.planner.run_step.await_count == 1

    async def test_reporter_receives_events(self, config, tmp_path):
        _write_test(tmp_path, "a.test.json", {"name": "A", "steps": ["x"]})
        reporter = Mock(spec=Reporter)
        runner = TestRunner(config, root=tmp_path, reporter=reporter, planner=_mock_planner([_step(0)]))
        await runner.initialize()

        summary = await runner.run_tests()

        reporter.run_started.assert_called_once_with("**/*.test.*", 1)
        reporter.test_started.assert_called_once()
        reporter.step_result.assert_called_once()
        reporter.attempt_result.assert_called_once()
        reporter.test_finished.assert_called_once()
        reporter.run_finished.assert_called_once_with(summary)
