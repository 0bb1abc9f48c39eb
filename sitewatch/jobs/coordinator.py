"""Job coordinator: exclusive bulk screenshot capture, single captures, site checks.

Bulk state machine:
  idle -> running -> (running | cancelling) -> complete -> idle

  - start_bulk() outside idle raises AlreadyRunning and sends nothing.
  - Only the engine's terminal event (is_complete=True) ends a run; nothing
    is completed or cancelled locally.
  - A finished run flushes pending registry saves, then reloads the
    registry once. It reports its errors in a single notification and
    returns to idle after the grace period. A cancelled run returns to
    idle as soon as its terminal event arrives.
  - The is_capturing flag is owned by whichever path set it (bulk or
    single) and is cleared by that path on every exit.
"""

import asyncio
import logging
from datetime import datetime

from sitewatch.core.errors import (
    AlreadyRunning,
    IndeterminateStateError,
    LoadError,
    NotRunning,
    SitewatchError,
    TransientIOError,
)
from sitewatch.core.notifications import Level, Notifier
from sitewatch.core.schemas import BulkJob, JobStatus, ScreenshotProgress, WebsiteRecord
from sitewatch.core.timers import AsyncioTimer, Timer, TimerHandle
from sitewatch.engine.base import Engine
from sitewatch.jobs.progress import ProgressChannel
from sitewatch.registry.store import RegistryStore
from sitewatch.registry.sync import PersistenceSynchronizer

logger = logging.getLogger(__name__)


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


class JobCoordinator:
    """Drives bulk and single capture requests against the engine.

    Usage::

        coordinator = JobCoordinator(store, engine, notifier=notifier)
        coordinator.attach()
        await coordinator.start_bulk()
        await coordinator.wait_until_idle()
        coordinator.detach()
    """

    def __init__(
        self,
        store: RegistryStore,
        engine: Engine,
        *,
        notifier: Notifier,
        grace: float = 2.0,
        timer: Timer | None = None,
        channel: ProgressChannel | None = None,
        sync: PersistenceSynchronizer | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._sync = sync
        self._notifier = notifier
        self._grace = grace
        self._timer = timer or AsyncioTimer()
        self._channel = channel or ProgressChannel(engine.events)
        self._job = BulkJob()
        self._idle = asyncio.Event()
        self._idle.set()
        self._grace_handle: TimerHandle | None = None
        self._reload_task: asyncio.Task[None] | None = None
        self._bulk_flagged: int | None = None
        self._single_in_flight: set[int] = set()
        self.last_error: SitewatchError | None = None

    @property
    def job(self) -> BulkJob:
        return self._job

    @property
    def status(self) -> JobStatus:
        return self._job.status

    def attach(self) -> None:
        """Open the progress subscription. Idempotent."""
        if not self._channel.is_open:
            self._channel.open(self._on_progress)

    def detach(self) -> None:
        """Close the progress subscription and release any bulk-owned flag."""
        self._channel.close()
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None
        self._clear_bulk_flag()

    async def wait_until_idle(self) -> None:
        """Wait for the bulk job to return to idle and its reload to settle."""
        await self._idle.wait()
        if self._reload_task is not None:
            await self._reload_task

    # ------------------------------------------------------------------
    # Bulk capture
    # ------------------------------------------------------------------

    async def start_bulk(self) -> bool:
        """Ask the engine to capture every website.

        Returns False if there was nothing to capture or the start request
        failed (reported via the notifier). Raises AlreadyRunning if a bulk
        job is not idle.
        """
        if self._job.status is not JobStatus.IDLE:
            msg = f"bulk capture is {self._job.status.value}"
            raise AlreadyRunning(msg)

        records = self._store.snapshot()
        if not records:
            self._notifier.notify("No websites to capture", Level.INFO)
            return False

        # claim the slot before awaiting so a concurrent start is rejected
        self._set_job(BulkJob(
            status=JobStatus.RUNNING,
            total=len(records),
            started_at=datetime.now(),
        ))
        logger.info("Starting bulk capture of %d websites", len(records))
        try:
            await self._engine.start_bulk_capture()
        except TransientIOError as e:
            logger.warning("Failed to start bulk screenshots: %s", e)
            self.last_error = e
            self._reset()
            self._notifier.notify(f"Failed to start bulk screenshots: {e}")
            return False
        return True

    async def cancel(self) -> bool:
        """Request cancellation; the job stays ``cancelling`` until the engine's terminal event.

        Returns False if the cancel request itself failed. In that case the
        job is left in ``cancelling`` and ``last_error`` holds an
        IndeterminateStateError.
        """
        if self._job.status is not JobStatus.RUNNING:
            msg = f"no running bulk capture to cancel (status: {self._job.status.value})"
            raise NotRunning(msg)

        self._set_job(self._job.model_copy(update={"status": JobStatus.CANCELLING}))
        try:
            await self._engine.cancel_bulk_capture()
        except TransientIOError as e:
            self.last_error = IndeterminateStateError(
                f"cancel request failed, bulk capture state unknown: {e}"
            )
            logger.warning("%s", self.last_error)
            self._notifier.notify(
                "Failed to cancel screenshots; they may still be running", Level.WARNING,
            )
            return False
        logger.info("Cancel acknowledged, waiting for the engine to stop")
        return True

    def _on_progress(self, progress: ScreenshotProgress) -> None:
        job = self._job
        if not job.is_active:
            logger.debug("Ignoring progress event while %s", job.status.value)
            return
        try:
            self._apply_progress(job, progress)
        except Exception:
            logger.exception("Failed to apply bulk progress %s", progress)
            self._notifier.notify("Failed to process screenshot progress")
            if progress.is_complete and self._job.status is not JobStatus.IDLE:
                # the engine has stopped; never leave the job stranded
                self._reset()
                if self._reload_task is None or self._reload_task.done():
                    self._reload_task = asyncio.get_running_loop().create_task(self._reload())

    def _apply_progress(self, job: BulkJob, progress: ScreenshotProgress) -> None:
        completed = min(progress.completed, progress.total)
        self._track_current(None if progress.is_complete else progress.current_id)
        self._set_job(job.model_copy(update={
            "total": progress.total,
            "completed": completed,
            "current_target": progress.current_website or None,
            "current_id": progress.current_id,
            "errors": list(progress.errors),
        }))
        logger.debug("Bulk progress %d/%d (%s)", completed, progress.total, progress.current_website)

        if progress.is_complete:
            self._finish()

    def _finish(self) -> None:
        job = self._job
        cancelled = job.status is JobStatus.CANCELLING
        self._set_job(job.model_copy(update={
            "status": JobStatus.COMPLETE,
            "current_target": None,
            "current_id": None,
        }))
        self._reload_task = asyncio.get_running_loop().create_task(self._reload())

        verb = "cancelled" if cancelled else "completed"
        if job.errors:
            logger.warning("Some screenshots failed: %s", job.errors)
            self._notifier.notify(
                f"Screenshots {verb} with {_plural(len(job.errors), 'error')}", Level.WARNING,
            )
        elif cancelled:
            self._notifier.notify("Screenshots cancelled", Level.INFO)
        else:
            logger.info("All %d screenshots completed successfully", job.total)

        if cancelled:
            self._reset()
        else:
            self._grace_handle = self._timer.call_later(self._grace, self._reset)

    async def _reload(self) -> None:
        if self._sync is not None:
            # edits still in the debounce window must reach storage first
            failed = self._sync.saves_failed
            await self._sync.flush()
            if self._sync.saves_failed > failed:
                logger.warning("Skipping reload after screenshots; unsaved edits would be lost")
                return
        try:
            await self._store.load()
        except LoadError as e:
            self.last_error = e
            self._notifier.notify("Failed to reload websites after screenshots")

    def _reset(self) -> None:
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None
        self._clear_bulk_flag()
        self._set_job(BulkJob())

    def _set_job(self, job: BulkJob) -> None:
        self._job = job
        if job.status is JobStatus.IDLE:
            self._idle.set()
        else:
            self._idle.clear()

    def _track_current(self, website_id: int | None) -> None:
        """Move the bulk-owned is_capturing flag to the record being processed."""
        if website_id == self._bulk_flagged:
            return
        self._clear_bulk_flag()
        if website_id is None or website_id in self._single_in_flight:
            return
        if self._store.update_one(website_id, {"is_capturing": True}) is not None:
            self._bulk_flagged = website_id

    def _clear_bulk_flag(self) -> None:
        flagged, self._bulk_flagged = self._bulk_flagged, None
        if flagged is not None:
            self._store.update_one(flagged, {"is_capturing": False})

    # ------------------------------------------------------------------
    # Single capture
    # ------------------------------------------------------------------

    async def take_single(self, website_id: int) -> WebsiteRecord | None:
        """Capture one website. Returns the updated record, or None on failure or missing id."""
        record = self._store.get(website_id)
        if record is None:
            logger.debug("take_single: website %d not in registry", website_id)
            return None
        if website_id in self._single_in_flight or (
            self._job.is_active and self._job.current_id == website_id
        ):
            msg = f"a capture is already in progress for website {website_id}"
            raise AlreadyRunning(msg)

        self._single_in_flight.add(website_id)
        self._store.update_one(website_id, {"is_capturing": True})
        try:
            screenshot = await self._engine.capture_screenshot(record.url)
        except TransientIOError as e:
            logger.warning("Error taking screenshot of %s: %s", record.url, e)
            self._notifier.notify(f"Failed to take screenshot: {record.display_name}")
            return None
        finally:
            self._single_in_flight.discard(website_id)
            self._store.update_one(website_id, {"is_capturing": False})

        now = datetime.now()
        updated = self._store.update_one(
            website_id, {"screenshot": screenshot, "screenshot_at": now, "last_checked_at": now},
        )
        if updated is not None:
            self._notifier.notify(f"Screenshot taken for {updated.display_name}", Level.INFO)
        return updated

    # ------------------------------------------------------------------
    # Site checks
    # ------------------------------------------------------------------

    async def check_one(self, website_id: int) -> WebsiteRecord | None:
        """Check one website's HTTP status and vitals. Returns None on failure or missing id."""
        record = self._store.get(website_id)
        if record is None:
            return None
        try:
            return await self._check(record)
        except TransientIOError as e:
            logger.warning("Error checking %s: %s", record.url, e)
            self._notifier.notify(f"Failed to check website: {record.display_name}")
            return None

    async def check_all(self) -> int:
        """Check every website concurrently. Returns how many checks succeeded.

        Per-site failures are collected into one summary notification.
        """
        records = self._store.snapshot()
        if not records:
            return 0
        outcomes = await asyncio.gather(
            *(self._check(r) for r in records), return_exceptions=True,
        )

        failures: list[str] = []
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, TransientIOError):
                failures.append(f"{record.display_name}: {outcome}")
            elif isinstance(outcome, BaseException):
                raise outcome

        if failures:
            logger.warning("Website checks failed: %s", failures)
            self._notifier.notify(
                f"Checked {_plural(len(records), 'website')}, {len(failures)} failed",
                Level.WARNING,
            )
        return len(records) - len(failures)

    async def _check(self, record: WebsiteRecord) -> WebsiteRecord | None:
        result = await self._engine.check_site(record.url)
        patch: dict[str, object] = {
            "http_status": result.status,
            "vitals": result.vitals,
            "last_checked_at": datetime.now(),
        }
        if result.is_wordpress is not None:
            patch["is_wordpress"] = result.is_wordpress
        return self._store.update_one(record.id, patch)
