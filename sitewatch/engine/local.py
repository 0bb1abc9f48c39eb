"""Local engine: SQLite storage plus in-process capture and checks.

Bulk capture runs as a background task:
  - One browser for the whole run, a fresh page per website
  - Cooperative cancel flag checked before each website and during the pause
  - Each screenshot is written to storage as soon as it is taken
  - Exactly one terminal ``is_complete`` event per run, also when the
    browser fails to launch or the run is cancelled
"""

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime
from types import TracebackType
from typing import Any, Protocol

from sitewatch.browser.capture import ScreenshotCapturer
from sitewatch.core import db
from sitewatch.core.config import Settings
from sitewatch.core.errors import EngineError, LoadError, SaveError
from sitewatch.core.events import PROGRESS_CHANNEL, EventBus
from sitewatch.core.schemas import (
    CheckResult,
    ProjectStatusOption,
    ScreenshotProgress,
    SearchQuery,
    SearchResult,
    WebsiteRecord,
)
from sitewatch.engine.base import Engine
from sitewatch.engine.checker import SiteChecker
from sitewatch.search.engine import evaluate, suggest

logger = logging.getLogger(__name__)


class Capturer(Protocol):
    """What the engine needs from a screenshot backend; ScreenshotCapturer satisfies it."""

    async def __aenter__(self) -> "Capturer": ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None: ...

    async def capture(self, url: str) -> str: ...


class LocalEngine(Engine):
    """Engine backed by a local SQLite file.

    Usage::

        engine = LocalEngine.open(settings)
        records = await engine.load_registry()
        await engine.start_bulk_capture()
        await engine.join_bulk()
        engine.close()
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        settings: Settings | None = None,
        *,
        capturer_factory: Callable[[], Capturer] | None = None,
        checker: SiteChecker | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._conn = conn
        self._settings = settings or Settings()
        self._capturer_factory = capturer_factory or (
            lambda: ScreenshotCapturer(self._settings.browser)
        )
        self._checker = checker or SiteChecker(self._settings.checks)
        self._events = bus or EventBus()
        self._bulk_task: asyncio.Task[None] | None = None
        self._cancel_requested = asyncio.Event()

    @classmethod
    def open(cls, settings: Settings, **kwargs: Any) -> "LocalEngine":
        return cls(db.init_db(settings.storage.path), settings, **kwargs)

    def close(self) -> None:
        self._conn.close()

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def bulk_running(self) -> bool:
        return self._bulk_task is not None and not self._bulk_task.done()

    async def join_bulk(self) -> None:
        """Wait for the current bulk run, if any, to finish."""
        if self._bulk_task is not None:
            await self._bulk_task

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def load_registry(self) -> list[WebsiteRecord]:
        try:
            return db.load_websites(self._conn)
        except (sqlite3.Error, ValueError) as e:
            msg = f"Failed to load websites: {e}"
            raise LoadError(msg) from e

    async def save_registry(self, records: list[WebsiteRecord]) -> None:
        try:
            written = db.replace_websites(self._conn, records)
        except (sqlite3.Error, ValueError) as e:
            msg = f"Failed to save websites: {e}"
            raise SaveError(msg) from e
        logger.debug("Saved %d websites", written)

    async def update_industry(self, website_id: int, industry: str) -> None:
        self._update_field(website_id, "industry", industry)

    async def update_project_status(self, website_id: int, project_status: str) -> None:
        self._update_field(website_id, "project_status", project_status)

    async def update_favorite(self, website_id: int, favorite: bool) -> None:
        self._update_field(website_id, "favorite", favorite)

    def _update_field(self, website_id: int, column: str, value: Any) -> None:
        try:
            found = db.update_website_field(self._conn, website_id, column, value)
        except sqlite3.Error as e:
            msg = f"Failed to update {column} for website {website_id}: {e}"
            raise EngineError(msg) from e
        if not found:
            msg = f"Website {website_id} not found"
            raise EngineError(msg)

    async def load_custom_statuses(self) -> list[ProjectStatusOption]:
        try:
            return db.load_custom_statuses(self._conn)
        except (sqlite3.Error, ValueError) as e:
            msg = f"Failed to load custom statuses: {e}"
            raise LoadError(msg) from e

    async def save_custom_statuses(self, statuses: list[ProjectStatusOption]) -> None:
        try:
            db.replace_custom_statuses(self._conn, statuses)
        except sqlite3.Error as e:
            msg = f"Failed to save custom statuses: {e}"
            raise SaveError(msg) from e

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, query: SearchQuery) -> SearchResult:
        return evaluate(await self._stored_websites(), query)

    async def suggestions(self, prefix: str) -> list[str]:
        search = self._settings.search
        return suggest(
            await self._stored_websites(),
            prefix,
            min_length=search.min_suggestion_length,
            limit=search.suggestion_limit,
        )

    async def _stored_websites(self) -> list[WebsiteRecord]:
        try:
            return db.load_websites(self._conn)
        except (sqlite3.Error, ValueError) as e:
            msg = f"Failed to read websites: {e}"
            raise EngineError(msg) from e

    # ------------------------------------------------------------------
    # Checks and captures
    # ------------------------------------------------------------------

    async def check_site(self, url: str) -> CheckResult:
        return await self._checker.check(url)

    async def capture_screenshot(self, url: str) -> str:
        async with self._capturer_factory() as capturer:
            return await capturer.capture(url)

    async def start_bulk_capture(self) -> None:
        if self.bulk_running:
            msg = "A bulk capture is already running"
            raise EngineError(msg)
        websites = await self._stored_websites()
        self._cancel_requested = asyncio.Event()
        self._bulk_task = asyncio.get_running_loop().create_task(
            self._run_bulk(websites, self._cancel_requested),
        )
        logger.info("Bulk capture started for %d websites", len(websites))

    async def cancel_bulk_capture(self) -> None:
        if not self.bulk_running:
            msg = "No bulk capture is running"
            raise EngineError(msg)
        self._cancel_requested.set()
        logger.info("Bulk capture cancellation requested")

    async def _run_bulk(self, websites: list[WebsiteRecord], cancel: asyncio.Event) -> None:
        total = len(websites)
        processed = 0
        errors: list[str] = []
        delay = self._settings.browser.capture_delay_ms / 1000
        try:
            if websites:
                async with self._capturer_factory() as capturer:
                    for website in websites:
                        if cancel.is_set():
                            logger.info("Bulk capture cancelled after %d of %d", processed, total)
                            break
                        self._emit(ScreenshotProgress(
                            total=total,
                            completed=processed,
                            current_website=website.display_name,
                            current_id=website.id,
                            errors=list(errors),
                        ))
                        error = await self._capture_and_store(capturer, website)
                        if error:
                            errors.append(error)
                        processed += 1
                        if processed < total and delay > 0:
                            await _wait_or_cancel(cancel, delay)
        except EngineError as e:
            # browser failed to launch
            logger.warning("Bulk capture aborted: %s", e)
            errors.append(str(e))
        finally:
            self._emit(ScreenshotProgress(
                total=total,
                completed=processed,
                is_complete=True,
                errors=errors,
            ))
            logger.info("Bulk capture finished: %d/%d, %d errors", processed, total, len(errors))

    async def _capture_and_store(self, capturer: Capturer, website: WebsiteRecord) -> str | None:
        """Capture one website and persist it. Returns an error description on failure."""
        try:
            screenshot = await capturer.capture(website.url)
        except EngineError as e:
            return f"Failed to screenshot {website.display_name}: {e}"
        try:
            if not db.set_screenshot(self._conn, website.id, screenshot, datetime.now()):
                logger.debug("Website %d removed during bulk capture", website.id)
        except sqlite3.Error as e:
            return f"Failed to save screenshot for {website.display_name}: {e}"
        return None

    def _emit(self, progress: ScreenshotProgress) -> None:
        self._events.emit(PROGRESS_CHANNEL, progress)


async def _wait_or_cancel(cancel: asyncio.Event, delay: float) -> None:
    """Sleep for ``delay`` seconds, returning early if cancellation is requested."""
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass
