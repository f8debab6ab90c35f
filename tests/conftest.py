"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from playwright.async_api import Page

from shortest.cache.action_cache import ActionCache
from shortest.models.actions import Decision, PageState
from shortest.models.config import ShortestConfig
from shortest.models.test_definition import AssertionHint, Step, TestDefinition

# ============================================================================
# Environment / Configuration Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove credential variables; anything load_dotenv sets is undone after the test."""
    for name in ("ANTHROPIC_API_KEY", "SHORTEST_TOTP_SECRET", "GITHUB_TOTP_SECRET", "SHORTEST_TEST_PASSWORD"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    return monkeypatch


@pytest.fixture
def config() -> ShortestConfig:
    """Create a test configuration."""
    return ShortestConfig(
        base_url="https://example.com",
        headless=True,
        anthropic_api_key="test-key",
    )


# ============================================================================
# Test Definition Fixtures
# ============================================================================


@pytest.fixture
def login_step() -> Step:
    return Step(
        intent="Log in with the test account",
        params={"username": "alice@example.com", "password": "s3cret"},
    )


@pytest.fixture
def login_test(login_step: Step) -> TestDefinition:
    """A two-step test at the default confidence."""
    return TestDefinition(
        source_path="tests/login.test.json",
        name="Login flow",
        steps=(
            login_step,
            Step(intent="Open the settings page",
                 assertion=AssertionHint(kind="url_contains", value="/settings")),
        ),
    )


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def page_state() -> PageState:
    return PageState(
        url="https://example.com/dashboard",
        title="Dashboard",
        dom_summary='[button] #logout "Log out"',
        fingerprint="abc123",
    )


@pytest.fixture
def mock_actuator(page_state: PageState) -> AsyncMock:
    """Create a mock BrowserActuator that always lands on the dashboard."""
    actuator = AsyncMock()
    actuator.capture_state.return_value = page_state
    actuator.url_contains.return_value = True
    return actuator


@pytest.fixture
def mock_decider() -> Mock:
    """Create a mock ActionDecider. Script ``decide.side_effect`` per test."""
    decider = Mock()
    decider.verify.return_value = Decision(verdict="pass")
    return decider


@pytest.fixture
def action_cache(tmp_path: Path) -> ActionCache:
    return ActionCache(tmp_path / ".shortest" / "cache" / "actions.json")


@pytest.fixture
def mock_session(mock_actuator: AsyncMock) -> Mock:
    """Create a mock BrowserSession that is already open."""
    session = Mock()
    session.is_open = True
    session.reset = AsyncMock()
    session.close = AsyncMock()
    session.actuator.return_value = mock_actuator
    return session


@pytest.fixture
def mock_anthropic_client() -> Mock:
    """Create a mock Anthropic client."""
    mock_client = Mock()
    mock_response = Mock()
    mock_response.content = [Mock(type="text", text='{"verdict": "pass", "reason": "done"}')]
    mock_response.stop_reason = "end_turn"
    mock_client.messages.create.return_value = mock_response
    return mock_client


@pytest.fixture
def mock_page() -> AsyncMock:
    """Create a mock Playwright page."""
    page = AsyncMock(spec=Page)
    page.url = "https://example.com"
    page.title.return_value = "Example Page"
    page.screenshot = AsyncMock(return_value=b"\x89PNG")
    page.goto = AsyncMock()
    page.click = AsyncMock()
    page.fill = AsyncMock()
    page.press = AsyncMock()
    page.evaluate = AsyncMock(return_value=[])
    page.wait_for_selector = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.keyboard = AsyncMock()
    page.keyboard.press = AsyncMock()
    return page
