"""Tests for the SQLite-backed local engine and its bulk capture task."""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from types import TracebackType

import httpx
import pytest

from sitewatch.core import db
from sitewatch.core.config import BrowserConfig, Settings, StorageConfig
from sitewatch.core.errors import EngineError, LoadError
from sitewatch.core.events import PROGRESS_CHANNEL
from sitewatch.core.schemas import ProjectStatusOption, ScreenshotProgress, SearchQuery
from sitewatch.engine.checker import SiteChecker
from sitewatch.engine.local import LocalEngine

from conftest import make_record


class FakeCapturer:
    """Stands in for ScreenshotCapturer; records URLs and fails on demand."""

    def __init__(
        self,
        fail_urls: set[str] | None = None,
        launch_error: Exception | None = None,
        gate: asyncio.Event | None = None,
        hold: set[str] | None = None,
    ) -> None:
        self.fail_urls = fail_urls or set()
        self.launch_error = launch_error
        self.gate = gate
        # URLs that wait on the gate; None holds every URL
        self.hold = hold
        self.captured: list[str] = []
        self.entered = 0
        self.exited = 0

    async def __aenter__(self) -> "FakeCapturer":
        if self.launch_error is not None:
            raise self.launch_error
        self.entered += 1
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.exited += 1

    async def capture(self, url: str) -> str:
        if self.gate is not None and (self.hold is None or url in self.hold):
            await self.gate.wait()
        self.captured.append(url)
        if url in self.fail_urls:
            msg = f"Failed to capture {url}: timeout"
            raise EngineError(msg)
        return f"data:image/png;base64,{len(self.captured)}"


def _settings(tmp_path: Path) -> Settings:
    return Settings(
        storage=StorageConfig(path=str(tmp_path / "sites.db")),
        browser=BrowserConfig(capture_delay_ms=0, settle_ms=0),
    )


@pytest.fixture()
def capturer() -> FakeCapturer:
    return FakeCapturer()


@pytest.fixture()
async def local(tmp_path: Path, capturer: FakeCapturer) -> AsyncIterator[LocalEngine]:
    engine = LocalEngine.open(_settings(tmp_path), capturer_factory=lambda: capturer)
    await engine.save_registry([make_record(1), make_record(2), make_record(3)])
    yield engine
    engine.close()


def _collect(engine: LocalEngine) -> list[ScreenshotProgress]:
    events: list[ScreenshotProgress] = []
    engine.events.subscribe(PROGRESS_CHANNEL, events.append)
    return events


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class TestStorage:
    async def test_save_then_load_keeps_order(self, local: LocalEngine) -> None:
        await local.save_registry([make_record(3), make_record(1, favorite=True)])
        records = await local.load_registry()
        assert [r.id for r in records] == [3, 1]
        assert records[1].favorite is True

    async def test_capturing_flag_not_stored(self, local: LocalEngine) -> None:
        await local.save_registry([make_record(1, is_capturing=True)])
        assert (await local.load_registry())[0].is_capturing is False

    async def test_malformed_row_is_load_error(self, local: LocalEngine) -> None:
        local._conn.execute("UPDATE websites SET url = 'not a url' WHERE id = 1")
        local._conn.commit()
        with pytest.raises(LoadError):
            await local.load_registry()

    async def test_field_updates(self, local: LocalEngine) -> None:
        await local.update_industry(1, "finance")
        await local.update_project_status(1, "live")
        await local.update_favorite(1, True)
        record = (await local.load_registry())[0]
        assert (record.industry, record.project_status, record.favorite) == ("finance", "live", True)

    async def test_update_missing_website(self, local: LocalEngine) -> None:
        with pytest.raises(EngineError, match="Website 42 not found"):
            await local.update_favorite(42, True)

    async def test_custom_statuses(self, local: LocalEngine) -> None:
        statuses = [
            ProjectStatusOption(value="review", label="Review", color="#fff"),
            ProjectStatusOption(value="blocked", label="Blocked", color="#f00"),
        ]
        await local.save_custom_statuses(statuses)
        assert await local.load_custom_statuses() == statuses

    async def test_search_reads_storage(self, local: LocalEngine) -> None:
        result = await local.search(SearchQuery(query="site2"))
        assert [r.id for r in result.matches] == [2]
        assert await local.suggestions("site 3") == ["Site 3"]


class TestChecks:
    async def test_check_site_uses_checker(self, tmp_path: Path) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(404, text=""))
        engine = LocalEngine(
            db.init_db(tmp_path / "c.db"), checker=SiteChecker(transport=transport),
        )
        try:
            assert (await engine.check_site("https://x.example.com")).status == 404
        finally:
            engine.close()

    async def test_single_capture_opens_and_closes_capturer(
        self, local: LocalEngine, capturer: FakeCapturer,
    ) -> None:
        result = await local.capture_screenshot("https://site1.example.com")
        assert result.startswith("data:image/png;base64,")
        assert (capturer.entered, capturer.exited) == (1, 1)


# ---------------------------------------------------------------------------
# Bulk capture
# ---------------------------------------------------------------------------


class TestBulkCapture:
    async def test_run_emits_progress_and_one_terminal_event(
        self, local: LocalEngine, capturer: FakeCapturer,
    ) -> None:
        events = _collect(local)
        await local.start_bulk_capture()
        await local.join_bulk()

        assert [e.current_id for e in events[:-1]] == [1, 2, 3]
        assert [e.completed for e in events[:-1]] == [0, 1, 2]
        terminal = events[-1]
        assert terminal.is_complete is True
        assert (terminal.total, terminal.completed, terminal.errors) == (3, 3, [])
        assert sum(1 for e in events if e.is_complete) == 1
        assert capturer.entered == 1

        stored = await local.load_registry()
        assert all(r.screenshot for r in stored)
        assert all(r.last_checked_at is not None for r in stored)

    async def test_failed_site_is_collected(self, tmp_path: Path) -> None:
        capturer = FakeCapturer(fail_urls={"https://site2.example.com"})
        engine = LocalEngine.open(_settings(tmp_path), capturer_factory=lambda: capturer)
        await engine.save_registry([make_record(1), make_record(2), make_record(3)])
        events = _collect(engine)
        await engine.start_bulk_capture()
        await engine.join_bulk()
        engine.close()

        terminal = events[-1]
        assert terminal.completed == 3
        assert len(terminal.errors) == 1
        assert terminal.errors[0].startswith("Failed to screenshot Site 2:")
        assert capturer.captured == [
            "https://site1.example.com", "https://site2.example.com", "https://site3.example.com",
        ]

    async def test_browser_launch_failure_still_terminates(self, tmp_path: Path) -> None:
        capturer = FakeCapturer(launch_error=EngineError("Failed to launch browser: missing"))
        engine = LocalEngine.open(_settings(tmp_path), capturer_factory=lambda: capturer)
        await engine.save_registry([make_record(1)])
        events = _collect(engine)
        await engine.start_bulk_capture()
        await engine.join_bulk()
        engine.close()

        assert len(events) == 1
        assert events[0].is_complete is True
        assert events[0].completed == 0
        assert events[0].errors == ["Failed to launch browser: missing"]

    async def test_empty_registry_terminates(self, tmp_path: Path, capturer: FakeCapturer) -> None:
        engine = LocalEngine.open(_settings(tmp_path), capturer_factory=lambda: capturer)
        events = _collect(engine)
        await engine.start_bulk_capture()
        await engine.join_bulk()
        engine.close()
        assert [(e.total, e.is_complete) for e in events] == [(0, True)]
        assert capturer.entered == 0

    async def test_second_start_rejected(self, tmp_path: Path) -> None:
        gate = asyncio.Event()
        capturer = FakeCapturer(gate=gate)
        engine = LocalEngine.open(_settings(tmp_path), capturer_factory=lambda: capturer)
        await engine.save_registry([make_record(1)])
        await engine.start_bulk_capture()
        with pytest.raises(EngineError, match="already running"):
            await engine.start_bulk_capture()
        gate.set()
        await engine.join_bulk()
        assert engine.bulk_running is False
        engine.close()

    async def test_cancel_stops_before_next_site(self, tmp_path: Path) -> None:
        gate = asyncio.Event()
        capturer = FakeCapturer(gate=gate)
        engine = LocalEngine.open(_settings(tmp_path), capturer_factory=lambda: capturer)
        await engine.save_registry([make_record(1), make_record(2), make_record(3)])
        events = _collect(engine)
        await engine.start_bulk_capture()
        for _ in range(5):
            await asyncio.sleep(0)

        await engine.cancel_bulk_capture()
        gate.set()
        await engine.join_bulk()
        engine.close()

        assert capturer.captured == ["https://site1.example.com"]
        terminal = events[-1]
        assert terminal.is_complete is True
        assert (terminal.total, terminal.completed) == (3, 1)

    async def test_registry_save_during_run_keeps_new_screenshots(self, tmp_path: Path) -> None:
        gate = asyncio.Event()
        capturer = FakeCapturer(gate=gate, hold={"https://site2.example.com"})
        engine = LocalEngine.open(_settings(tmp_path), capturer_factory=lambda: capturer)
        before_run = [make_record(1), make_record(2)]
        await engine.save_registry(before_run)
        await engine.start_bulk_capture()
        for _ in range(5):
            await asyncio.sleep(0)
        assert capturer.captured == ["https://site1.example.com"]

        # the registry saves its pre-run copy with a user edit on site 1
        edited = before_run[0].model_copy(update={"favorite": True})
        await engine.save_registry([edited, before_run[1]])
        gate.set()
        await engine.join_bulk()
        stored = await engine.load_registry()
        engine.close()

        assert stored[0].favorite is True
        assert stored[0].screenshot == "data:image/png;base64,1"
        assert stored[0].screenshot_at is not None
        assert stored[1].screenshot == "data:image/png;base64,2"

    async def test_cancel_interrupts_pause(self, tmp_path: Path, capturer: FakeCapturer) -> None:
        settings = _settings(tmp_path).model_copy(
            update={"browser": BrowserConfig(capture_delay_ms=60000, settle_ms=0)},
        )
        engine = LocalEngine.open(settings, capturer_factory=lambda: capturer)
        await engine.save_registry([make_record(1), make_record(2)])
        await engine.start_bulk_capture()
        for _ in range(5):
            await asyncio.sleep(0)
        await engine.cancel_bulk_capture()
        await asyncio.wait_for(engine.join_bulk(), timeout=2.0)
        engine.close()
        assert capturer.captured == ["https://site1.example.com"]

    async def test_cancel_without_run(self, local: LocalEngine) -> None:
        with pytest.raises(EngineError, match="No bulk capture is running"):
            await local.cancel_bulk_capture()
