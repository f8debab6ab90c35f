"""Browser actuator: executes concrete actions against a Playwright page."""

from __future__ import annotations

import base64
import logging
from typing import Optional, Protocol
from urllib.parse import urljoin

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from shortest.errors import ActuationError, AssertionFailed
from shortest.models.actions import ActionRecord, PageState

from .dom_summary import page_fingerprint, summarize_dom

logger = logging.getLogger(__name__)


class BrowserActuator(Protocol):
    """Primitives the planner needs from a browser session."""

    async def navigate(self, url: str) -> None: ...

    async def click(self, locator: str) -> None: ...

    async def type(self, locator: str, text: str) -> None: ...

    async def press(self, key: str, locator: Optional[str] = None) -> None: ...

    async def wait(self, locator: Optional[str] = None, ms: Optional[int] = None) -> None: ...

    async def check(self, locator: str, text: Optional[str] = None) -> None: ...

    async def capture_state(self, with_screenshot: bool = True) -> PageState: ...

    async def url_contains(self, fragment: str) -> bool: ...


async def perform(actuator: BrowserActuator, action: ActionRecord) -> None:
    """Dispatch one (already placeholder-resolved) action to the actuator."""
    logger.debug("Performing %s | locator=%s | %s", action.kind, action.locator,
                 action.description or "")

    match action.kind:
        case "navigate":
            url = action.value or action.locator
            if not url:
                raise ActuationError("navigate action requires a URL", "navigate")
            await actuator.navigate(url)
        case "click":
            if not action.locator:
                raise ActuationError("click action requires a locator", "click")
            await actuator.click(action.locator)
        case "type":
            if not action.locator:
                raise ActuationError("type action requires a locator", "type")
            await actuator.type(action.locator, action.value or "")
        case "press":
            await actuator.press(action.value or "Enter", action.locator)
        case "wait":
            ms = None
            if action.value and not action.locator:
                try:
                    ms = int(action.value)
                except ValueError:
                    raise ActuationError(f"wait value must be milliseconds, got {action.value!r}",
                                         "wait") from None
            await actuator.wait(action.locator, ms)
        case "assert":
            if not action.locator:
                raise ActuationError("assert action requires a locator", "assert")
            await actuator.check(action.locator, action.value)
        case _:
            raise ActuationError(f"Unknown action kind: {action.kind}", action.kind)


class PlaywrightActuator:
    """BrowserActuator backed by a single Playwright page.

    Playwright errors are translated into :class:`ActuationError` so that the
    planner records them as the step's failure reason.
    """

    def __init__(self, page: Page, base_url: str = "", timeout_ms: int = 10000):
        self.page = page
        self.base_url = base_url
        self.timeout_ms = timeout_ms

    def resolve_url(self, url: str) -> str:
        if url.startswith(("http://", "https://", "about:", "data:")):
            return url
        return urljoin(self.base_url.rstrip("/") + "/", url.lstrip("/"))

    async def navigate(self, url: str) -> None:
        target = self.resolve_url(url)
        logger.debug("Navigating to %s...", target)
        try:
            await self.page.goto(target, wait_until="domcontentloaded", timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise ActuationError(f"Navigation to {target} failed: {e.message}", "navigate", target) from e
        try:
            await self.page.wait_for_load_state("networkidle", timeout=min(self.timeout_ms, 5000))
        except PlaywrightError:
            logger.debug("Network idle timeout, continuing")

    async def click(self, locator: str) -> None:
        try:
            await self.page.click(locator, timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise ActuationError(f"Click failed: {e.message}", "click", locator) from e

    async def type(self, locator: str, text: str) -> None:
        try:
            await self.page.fill(locator, text, timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise ActuationError(f"Typing failed: {e.message}", "type", locator) from e

    async def press(self, key: str, locator: Optional[str] = None) -> None:
        try:
            if locator:
                await self.page.press(locator, key, timeout=self.timeout_ms)
            else:
                await self.page.keyboard.press(key)
        except PlaywrightError as e:
            raise ActuationError(f"Key press {key} failed: {e.message}", "press", locator) from e

    async def wait(self, locator: Optional[str] = None, ms: Optional[int] = None) -> None:
        try:
            if locator:
                await self.page.wait_for_selector(locator, timeout=self.timeout_ms)
            else:
                await self.page.wait_for_timeout(ms if ms is not None else 1000)
        except PlaywrightError as e:
            raise ActuationError(f"Wait failed: {e.message}", "wait", locator) from e

    async def check(self, locator: str, text: Optional[str] = None) -> None:
        """Assert that an element is visible (and contains ``text`` when given)."""
        try:
            element = await self.page.wait_for_selector(
                locator, state="visible", timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise AssertionFailed(f"Expected element {locator} to be visible",
                                  {"locator": locator}) from e
        if text:
            try:
                content = (await element.inner_text()) if element else ""
            except PlaywrightError as e:
                raise AssertionFailed(f"Could not read text of {locator}: {e.message}",
                                      {"locator": locator}) from e
            if text.lower() not in content.lower():
                raise AssertionFailed(
                    f"Element {locator} does not contain {text!r}",
                    {"locator": locator, "actual": content[:200]},
                )

    async def url_contains(self, fragment: str) -> bool:
        return fragment in self.page.url

    async def capture_state(self, with_screenshot: bool = True) -> PageState:
        url = self.page.url
        try:
            title = await self.page.title()
        except PlaywrightError:
            title = ""
        summary = await summarize_dom(self.page)
        screenshot_b64 = None
        if with_screenshot:
            try:
                raw = await self.page.screenshot(full_page=False)
                screenshot_b64 = base64.b64encode(raw).decode()
            except PlaywrightError as e:
                logger.warning("Screenshot failed: %s", e)
        return PageState(
            url=url,
            title=title,
            dom_summary=summary,
            screenshot_b64=screenshot_b64,
            fingerprint=page_fingerprint(url, summary),
        )
