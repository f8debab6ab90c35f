"""CLI entry point for the test engine."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from shortest.auth.totp import TOTPGenerator
from shortest.cache.action_cache import ActionCache
from shortest.errors import ConfigError, InitializationError, InvalidSecretError, ShortestError
from shortest.models.config import CONFIG_FILENAME, ShortestConfig
from shortest.models.test_result import RunSummary
from shortest.runner.reporter import ConsoleReporter
from shortest.runner.test_runner import TestRunner
from shortest.scaffold import init_project

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )
    # Third-party chatter stays at WARNING even in debug mode
    for noisy in ("httpx", "httpcore", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _load_config(config_path: str | None) -> ShortestConfig:
    try:
        return ShortestConfig.load(config_path)
    except ConfigError as e:
        _config_hint(e)
        sys.exit(1)


def _config_hint(error: ConfigError) -> None:
    console.print(f"[red]Configuration error:[/red] {error}")
    console.print(f"\nRequired: [bold]base_url[/bold] in {CONFIG_FILENAME} and "
                  "[bold]ANTHROPIC_API_KEY[/bold] in the environment or .env.local.")
    console.print("Run [blue]shortest init[/blue] to create both.")


async def _run(runner: TestRunner, pattern: str | None) -> RunSummary:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, runner.cancel)
    except (NotImplementedError, RuntimeError):
        pass  # add_signal_handler is unavailable on Windows event loops
    async with runner:
        return await runner.run_tests(pattern)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """AI-driven end-to-end tests written in plain language"""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


@cli.command()
@click.argument("pattern", required=False)
@click.option("--headless", is_flag=True, help="Run the browser without a window")
@click.option("--target", "-t", help="Base URL of the application under test")
@click.option("--debug-ai", is_flag=True, help="Log AI exchanges and show cache/AI markers")
@click.option("--no-cache", is_flag=True, help="Plan every step with the AI, ignoring cached plans")
@click.option("--confidence", help="Default confidence level (80, 95, 99, 99.9, 100)")
@click.option("--config", "-c", "config_path", default=None, help="Config file path")
@click.pass_context
def run(
    ctx: click.Context,
    pattern: str | None,
    headless: bool,
    target: str | None,
    debug_ai: bool,
    no_cache: bool,
    confidence: str | None,
    config_path: str | None,
) -> None:
    """Run every test matching PATTERN (default: the configured test_pattern)."""
    cfg = _load_config(config_path).with_overrides(
        headless=headless or None,
        base_url=target,
        debug_ai=debug_ai or None,
        confidence=confidence,
        cache_enabled=False if no_cache else None,
    )
    if cfg.debug_ai and not ctx.obj.get("verbose"):
        setup_logging(True)

    try:
        runner = TestRunner(cfg, reporter=ConsoleReporter(console, debug=cfg.debug_ai))
        summary = asyncio.run(_run(runner, pattern))
    except ConfigError as e:
        _config_hint(e)
        sys.exit(1)
    except InitializationError as e:
        console.print(f"[red]Initialization failed:[/red] {e}")
        sys.exit(1)
    except ShortestError as e:
        console.print(f"[red]Run aborted:[/red] {e}")
        sys.exit(1)

    if summary.cancelled:
        console.print("[yellow]Run cancelled[/yellow]")
    if not summary.success:
        sys.exit(1)


@cli.command("github-code")
@click.option("--secret", "-s", help="Base32 TOTP secret (default: GITHUB_TOTP_SECRET)")
@click.option("--config", "-c", "config_path", default=None, help="Config file path")
def github_code(secret: str | None, config_path: str | None) -> None:
    """Print the current 2FA code for a TOTP secret."""
    if not secret:
        secret = _load_config(config_path).totp_secret
    try:
        result = TOTPGenerator().generate(secret)
    except InvalidSecretError as e:
        console.print(f"[red]{e}[/red]")
        console.print("Pass [blue]--secret[/blue] or set GITHUB_TOTP_SECRET in .env.local.")
        sys.exit(1)
    console.print(f"[bold]{result.code}[/bold]")
    console.print(f"[dim]Expires in {result.seconds_remaining}s[/dim]")


@cli.command()
@click.option("--target", "-t", default=None, help="Base URL to write into the config")
def init(target: str | None) -> None:
    """Create a default configuration, env template and .gitignore entries."""
    for line in init_project(Path("."), target_url=target):
        console.print(f"[green]✓[/green] {line}")
    console.print("\nAdd your ANTHROPIC_API_KEY to .env.local, then run:")
    console.print("  [blue]shortest run[/blue]")


@cli.group()
def cache() -> None:
    """Manage the action cache."""
    pass


@cache.command("clear")
@click.option("--config", "-c", "config_path", default=None, help="Config file path")
def cache_clear(config_path: str | None) -> None:
    """Delete every cached action plan."""
    cfg = _load_config(config_path)
    action_cache = ActionCache(cfg.state_path / "cache" / "actions.json")
    removed = action_cache.clear()
    console.print(f"[green]Cleared {removed} cached plan(s)[/green]")


if __name__ == "__main__":
    cli()
