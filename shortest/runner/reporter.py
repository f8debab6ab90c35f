"""Run event reporting: rich console output and JSON summaries."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from rich.console import Console
from rich.table import Table

from shortest.models.test_definition import TestDefinition
from shortest.models.test_result import RunOutcome, RunSummary, StepResult, TestResult

logger = logging.getLogger(__name__)


class Reporter:
    """Receives run events. The base implementation ignores all of them."""

    def run_started(self, pattern: str, test_count: int) -> None:
        pass

    def test_started(self, test: TestDefinition, attempts: int) -> None:
        pass

    def step_result(self, test: TestDefinition, attempt: int, result: StepResult) -> None:
        pass

    def attempt_result(self, test: TestDefinition, outcome: RunOutcome) -> None:
        pass

    def test_finished(self, result: TestResult) -> None:
        pass

    def run_finished(self, summary: RunSummary) -> None:
        pass


_RESULT_STYLE = {"pass": "green", "fail": "red", "skip": "yellow"}


class ConsoleReporter(Reporter):
    """Human-readable progress on a rich console."""

    def __init__(self, console: Console | None = None, debug: bool = False):
        self.console = console or Console()
        self.debug = debug

    def run_started(self, pattern: str, test_count: int) -> None:
        noun = "test" if test_count == 1 else "tests"
        self.console.print(f"\n[bold]Running {test_count} {noun}[/bold] [dim]({pattern})[/dim]")

    def test_started(self, test: TestDefinition, attempts: int) -> None:
        if test.skip:
            return
        runs = f" [dim]x{attempts}[/dim]" if attempts > 1 else ""
        self.console.print(f"\n[cyan]●[/cyan] {test.name} [dim]{test.source_path}[/dim]{runs}")

    def step_result(self, test: TestDefinition, attempt: int, result: StepResult) -> None:
        mark = "[green]✓[/green]" if result.passed else "[red]✗[/red]"
        source = ""
        if self.debug:
            source = " [blue](cache)[/blue]" if result.source == "cache" else \
                f" [magenta](ai, {result.ai_calls} calls)[/magenta]"
            if result.cache_invalidated:
                source += " [yellow](stale cache dropped)[/yellow]"
        self.console.print(f"    {mark} {result.intent}{source}")
        if not result.passed and result.error_message:
            self.console.print(f"      [red]{result.error_type}:[/red] {result.error_message}")

    def attempt_result(self, test: TestDefinition, outcome: RunOutcome) -> None:
        status = "[green]passed[/green]" if outcome.passed else "[red]failed[/red]"
        self.console.print(f"  attempt {outcome.attempt}: {status} [dim]({outcome.duration_seconds:.1f}s)[/dim]")

    def test_finished(self, result: TestResult) -> None:
        style = _RESULT_STYLE.get(result.result, "white")
        if result.result == "skip":
            self.console.print(f"\n[yellow]○[/yellow] {result.test_name} [yellow]skipped[/yellow]")
            return
        detail = ""
        if result.planned_attempts > 1:
            detail = f" ({result.passes}/{result.attempts_run} attempts passed, " \
                     f"{result.required_passes} required at {result.confidence}%)"
        self.console.print(f"  [{style}]{result.result.upper()}[/{style}]{detail}")

    def run_finished(self, summary: RunSummary) -> None:
        table = Table(title="Test Summary")
        table.add_column("Metric", style="bold")
        table.add_column("Value")
        table.add_row("Total", str(summary.total_tests))
        table.add_row("Passed", f"[green]{summary.passed}[/green]")
        table.add_row("Failed", f"[red]{summary.failed}[/red]")
        table.add_row("Skipped", f"[yellow]{summary.skipped}[/yellow]")
        table.add_row("Duration", f"{summary.duration_seconds}s")
        self.console.print()
        self.console.print(table)

        failures = [r for r in summary.test_results if r.result == "fail"]
        for r in failures:
            where = []
            if r.failed_attempt is not None:
                where.append(f"attempt {r.failed_attempt}")
            if r.failed_step_index is not None:
                where.append(f"step {r.failed_step_index + 1}")
            location = f" [dim]({', '.join(where)})[/dim]" if where else ""
            self.console.print(f"[red]✗ {r.test_name}[/red]{location}: {r.failure_reason}")


def write_json_report(summary: RunSummary, output_path: Path) -> Path:
    """Write a machine-readable JSON report of the run."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(summary.model_dump(), f, indent=2, default=str)
    logger.debug("JSON report written to %s", output_path)
    return output_path
