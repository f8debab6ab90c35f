"""Browser session: one Playwright browser/context/page shared by a run."""

from __future__ import annotations

import logging
from typing import Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError

from shortest.errors import ActuationError, InitializationError

from .actuator import PlaywrightActuator

logger = logging.getLogger(__name__)


class BrowserSession:
    """Explicit session handle passed to the components that drive the browser."""

    def __init__(
        self,
        headless: bool = False,
        base_url: str = "",
        viewport: Optional[dict] = None,
        timeout_ms: int = 10000,
    ):
        self.headless = headless
        self.base_url = base_url
        self.viewport = viewport or {"width": 1280, "height": 720}
        self.timeout_ms = timeout_ms
        self._playwright: Playwright | None = None
        self.browser: Browser | None = None
        self.context: BrowserContext | None = None
        self.page: Page | None = None

    @property
    def is_open(self) -> bool:
        return self.page is not None

    async def start(self) -> None:
        logger.debug("Launching Chromium (headless=%s)...", self.headless)
        try:
            self._playwright = await async_playwright().start()
            self.browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=["--disable-blink-features=AutomationControlled"],
            )
            self.context = await self.browser.new_context(
                viewport=self.viewport,
                locale="en-US",
            )
            self.page = await self.context.new_page()
        except PlaywrightError as e:
            await self.close()
            raise InitializationError(
                f"Could not start browser session: {e.message}. "
                "Run 'playwright install chromium' if the browser is missing."
            ) from e
        logger.info("Browser session ready (headless=%s)", self.headless)

    async def reset(self) -> None:
        """Start an attempt from a clean slate: no cookies, on the base URL."""
        if self.context is None:
            raise InitializationError("Browser session has not been started")
        try:
            await self.context.clear_cookies()
        except PlaywrightError as e:
            raise ActuationError(f"Could not reset session: {e.message}", "reset") from e
        if self.base_url:
            await self.actuator().navigate(self.base_url)

    def actuator(self) -> PlaywrightActuator:
        if self.page is None:
            raise InitializationError("Browser session has not been started")
        return PlaywrightActuator(self.page, base_url=self.base_url, timeout_ms=self.timeout_ms)

    async def close(self) -> None:
        """Release browser resources; safe to call more than once."""
        for name in ("context", "browser"):
            resource = getattr(self, name)
            if resource is not None:
                try:
                    await resource.close()
                except PlaywrightError as e:
                    logger.debug("Error closing %s: %s", name, e)
                setattr(self, name, None)
        self.page = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
