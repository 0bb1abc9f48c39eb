"""Browser session management using patchright.

Rules:
  - One browser + context per bulk run (or per single capture)
  - A fresh page per website, closed after its screenshot
  - Navigation timeout and viewport come from BrowserConfig
"""

import logging
from types import TracebackType

from patchright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from sitewatch.core.config import BrowserConfig

logger = logging.getLogger(__name__)


class BrowserSession:
    """Async context manager that owns one patchright browser + context.

    Usage::

        async with BrowserSession(config) as session:
            page = await session.new_page()
            await page.goto("https://...")
    """

    def __init__(self, config: BrowserConfig) -> None:
        self._config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    @property
    def context(self) -> BrowserContext:
        """The browser context for this session. Raises if not entered."""
        if self._context is None:
            msg = "BrowserSession not entered, use 'async with'"
            raise RuntimeError(msg)
        return self._context

    async def new_page(self) -> Page:
        return await self.context.new_page()

    async def __aenter__(self) -> "BrowserSession":
        pw = await async_playwright().start()
        self._playwright = pw
        try:
            self._browser = await pw.chromium.launch(headless=self._config.headless)
            self._context = await self._browser.new_context(
                viewport={
                    "width": self._config.viewport_width,
                    "height": self._config.viewport_height,
                },
            )
        except BaseException:
            await self._close()
            raise
        self._context.set_default_timeout(self._config.timeout_ms)
        logger.debug("Browser started (headless=%s)", self._config.headless)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self._close()

    async def _close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
