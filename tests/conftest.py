"""Shared fakes: a manual timer and an in-memory engine."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from sitewatch.core.events import PROGRESS_CHANNEL, EventBus
from sitewatch.core.schemas import (
    CheckResult,
    ProjectStatusOption,
    ScreenshotProgress,
    SearchQuery,
    SearchResult,
    WebsiteRecord,
)
from sitewatch.core.timers import Timer
from sitewatch.engine.base import Engine
from sitewatch.search.engine import evaluate, suggest

# ---------------------------------------------------------------------------
# FakeTimer
# ---------------------------------------------------------------------------


class _Scheduled:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimer(Timer):
    """Manual clock: callbacks run only when ``advance`` moves past their deadline."""

    def __init__(self) -> None:
        self.now = 0.0
        self._scheduled: list[_Scheduled] = []
        self._seq = 0

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Scheduled:
        self._seq += 1
        handle = _Scheduled(self.now + max(delay, 0.0), self._seq, callback)
        self._scheduled.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for h in self._scheduled if not h.cancelled and not h.fired)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [
                h for h in self._scheduled
                if not h.cancelled and not h.fired and h.when <= target
            ]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self.now = handle.when
            handle.fired = True
            handle.callback()
        self.now = target


# ---------------------------------------------------------------------------
# FakeEngine
# ---------------------------------------------------------------------------


class FakeEngine(Engine):
    """Records every command; failures and blocking are configured per method."""

    def __init__(self, records: list[WebsiteRecord] | None = None) -> None:
        self._events = EventBus()
        self.stored: list[WebsiteRecord] = list(records or [])
        self.stored_statuses: list[ProjectStatusOption] = []
        self.calls: list[tuple[Any, ...]] = []
        self.saves: list[list[WebsiteRecord]] = []
        self.failures: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.check_results: dict[str, CheckResult | Exception] = {}
        self.screenshot = "data:image/png;base64,iVBORw0KGgo="

    @property
    def events(self) -> EventBus:
        return self._events

    def fail(self, method: str, error: Exception) -> None:
        self.failures[method] = error

    def block(self, method: str) -> asyncio.Event:
        """Make ``method`` wait until the returned event is set."""
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    def emit_progress(self, **fields: Any) -> int:
        return self._events.emit(PROGRESS_CHANNEL, ScreenshotProgress(**fields))

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    async def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        error = self.failures.get(method)
        if error is not None:
            raise error

    async def load_registry(self) -> list[WebsiteRecord]:
        await self._enter("load_registry")
        return list(self.stored)

    async def save_registry(self, records: list[WebsiteRecord]) -> None:
        self.saves.append(list(records))
        await self._enter("save_registry")
        self.stored = list(records)

    async def check_site(self, url: str) -> CheckResult:
        await self._enter("check_site", url)
        result = self.check_results.get(url, CheckResult(status=200))
        if isinstance(result, Exception):
            raise result
        return result

    async def capture_screenshot(self, url: str) -> str:
        await self._enter("capture_screenshot", url)
        return self.screenshot

    async def start_bulk_capture(self) -> None:
        await self._enter("start_bulk_capture")

    async def cancel_bulk_capture(self) -> None:
        await self._enter("cancel_bulk_capture")

    async def update_industry(self, website_id: int, industry: str) -> None:
        await self._enter("update_industry", website_id, industry)

    async def update_project_status(self, website_id: int, project_status: str) -> None:
        await self._enter("update_project_status", website_id, project_status)

    async def update_favorite(self, website_id: int, favorite: bool) -> None:
        await self._enter("update_favorite", website_id, favorite)

    async def search(self, query: SearchQuery) -> SearchResult:
        await self._enter("search", query)
        return evaluate(self.stored, query)

    async def suggestions(self, prefix: str) -> list[str]:
        await self._enter("suggestions", prefix)
        return suggest(self.stored, prefix)

    async def load_custom_statuses(self) -> list[ProjectStatusOption]:
        await self._enter("load_custom_statuses")
        return list(self.stored_statuses)

    async def save_custom_statuses(self, statuses: list[ProjectStatusOption]) -> None:
        await self._enter("save_custom_statuses", statuses)
        self.stored_statuses = list(statuses)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_record(website_id: int = 1, name: str | None = None, **kw: Any) -> WebsiteRecord:
    defaults: dict[str, Any] = {
        "id": website_id,
        "url": f"https://site{website_id}.example.com",
        "display_name": name or f"Site {website_id}",
    }
    defaults.update(kw)
    return WebsiteRecord(**defaults)


@pytest.fixture()
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture()
def engine() -> FakeEngine:
    return FakeEngine([make_record(1), make_record(2), make_record(3)])


@pytest.fixture()
def drain() -> Callable[[], Awaitable[None]]:
    """Let pending tasks on the running loop make progress."""

    async def _drain() -> None:
        for _ in range(10):
            await asyncio.sleep(0)

    return _drain
