"""Page screenshots encoded as PNG data URLs."""

import asyncio
import base64
import logging
from types import TracebackType
from typing import Protocol, runtime_checkable

from sitewatch.browser.session import BrowserSession
from sitewatch.core.config import BrowserConfig
from sitewatch.core.errors import EngineError

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/png;base64,"


@runtime_checkable
class PageLike(Protocol):
    """Minimal page interface so tests can use AsyncMock instead of patchright."""

    async def goto(self, url: str, **kwargs: object) -> object: ...
    async def screenshot(self, **kwargs: object) -> bytes: ...
    async def close(self) -> None: ...


def encode_png_data_url(png: bytes) -> str:
    return DATA_URL_PREFIX + base64.b64encode(png).decode("ascii")


async def capture_page(page: PageLike, url: str, *, settle_ms: int = 3000) -> str:
    """Navigate, let the page settle, take a full-page PNG. Always closes the page.

    Any navigation or capture failure is raised as EngineError.
    """
    try:
        await page.goto(url, wait_until="load")
        if settle_ms > 0:
            await asyncio.sleep(settle_ms / 1000)
        png = await page.screenshot(full_page=True, type="png")
    except Exception as e:
        msg = f"Failed to capture {url}: {e}"
        raise EngineError(msg) from e
    finally:
        try:
            await page.close()
        except Exception:
            logger.debug("Failed to close page for %s", url, exc_info=True)
    logger.debug("Captured %s (%d bytes)", url, len(png))
    return encode_png_data_url(png)


class ScreenshotCapturer:
    """One browser session reused for every capture until exit.

    Usage::

        async with ScreenshotCapturer(config) as capturer:
            data_url = await capturer.capture("https://example.com")
    """

    def __init__(self, config: BrowserConfig) -> None:
        self._config = config
        self._session: BrowserSession | None = None

    async def __aenter__(self) -> "ScreenshotCapturer":
        session = BrowserSession(self._config)
        try:
            await session.__aenter__()
        except Exception as e:
            msg = f"Failed to launch browser: {e}"
            raise EngineError(msg) from e
        self._session = session
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._session is not None:
            await self._session.__aexit__(exc_type, exc_val, exc_tb)
            self._session = None

    async def capture(self, url: str) -> str:
        if self._session is None:
            msg = "ScreenshotCapturer not entered, use 'async with'"
            raise RuntimeError(msg)
        try:
            page = await self._session.new_page()
        except Exception as e:
            msg = f"Failed to open page for {url}: {e}"
            raise EngineError(msg) from e
        return await capture_page(page, url, settle_ms=self._config.settle_ms)
