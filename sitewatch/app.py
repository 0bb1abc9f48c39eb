"""Dashboard session: owns and wires every core component.

One ``Dashboard`` is created per application session and torn down at
shutdown. Nothing in the core is module-level state; everything the
components share is passed in here.
"""

import logging
from types import TracebackType

from sitewatch.core.backup import ImportReport, dump_backup, export_backup, parse_backup
from sitewatch.core.config import Settings
from sitewatch.core.errors import InvalidInputError, LoadError, TransientIOError
from sitewatch.core.notifications import Level, Notifier
from sitewatch.core.schemas import INDUSTRIES, ProjectStatusOption, WebsiteRecord
from sitewatch.core.timers import Timer
from sitewatch.engine.base import Engine
from sitewatch.jobs.coordinator import JobCoordinator
from sitewatch.registry.statuses import ProjectStatusCatalog
from sitewatch.registry.store import RegistryStore
from sitewatch.registry.sync import PersistenceSynchronizer
from sitewatch.search.engine import SearchEngine

logger = logging.getLogger(__name__)


class Dashboard:
    """Application session.

    Usage::

        async with Dashboard(engine, settings) as dashboard:
            dashboard.add_website("https://example.com")
            await dashboard.jobs.start_bulk()
    """

    def __init__(
        self,
        engine: Engine,
        settings: Settings | None = None,
        *,
        timer: Timer | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.engine = engine
        self.notifier = Notifier(ttl=self.settings.notifications.ttl_ms / 1000, timer=timer)
        self.store = RegistryStore(engine, self.notifier)
        self.sync = PersistenceSynchronizer(
            self.store,
            engine,
            delay=self.settings.sync.debounce_ms / 1000,
            timer=timer,
            notifier=self.notifier,
        )
        self.jobs = JobCoordinator(
            self.store,
            engine,
            notifier=self.notifier,
            grace=self.settings.jobs.completion_grace_ms / 1000,
            timer=timer,
            sync=self.sync,
        )
        self.search = SearchEngine(self.store, self.settings.search)
        self.statuses = ProjectStatusCatalog()

    async def start(self) -> None:
        """Attach listeners and load the registry and custom statuses.

        Load failures are reported as notifications; the session still starts
        with whatever it has in memory.
        """
        self.sync.start()
        self.jobs.attach()
        try:
            await self.store.load()
        except LoadError as e:
            logger.warning("Starting with an empty registry: %s", e)
            self.notifier.notify("Failed to load websites")
        try:
            self.statuses.replace_custom(await self.engine.load_custom_statuses())
        except (LoadError, InvalidInputError) as e:
            logger.warning("Ignoring stored custom statuses: %s", e)
            self.notifier.notify("Failed to load custom statuses", Level.WARNING)

    async def close(self) -> None:
        """Write any pending change, then detach every listener."""
        await self.sync.flush()
        self.sync.stop()
        self.jobs.detach()

    async def __aenter__(self) -> "Dashboard":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Websites
    # ------------------------------------------------------------------

    def add_website(
        self,
        url: str,
        industry: str = "general",
        display_name: str | None = None,
    ) -> WebsiteRecord:
        _check_industry(industry)
        return self.store.add(url, industry=industry, display_name=display_name)

    def remove_website(self, website_id: int) -> bool:
        return self.store.remove_one(website_id)

    async def set_industry(self, website_id: int, industry: str) -> WebsiteRecord | None:
        _check_industry(industry)
        return await self.store.upsert_industry(website_id, industry)

    async def set_project_status(
        self, website_id: int, project_status: str,
    ) -> WebsiteRecord | None:
        if project_status not in self.statuses.values():
            msg = f"unknown project status '{project_status}'"
            raise InvalidInputError(msg)
        return await self.store.upsert_project_status(website_id, project_status)

    # ------------------------------------------------------------------
    # Custom project statuses
    # ------------------------------------------------------------------

    async def add_custom_status(self, label: str, color: str) -> ProjectStatusOption:
        option = self.statuses.add(label, color)
        await self._save_statuses()
        return option

    async def remove_custom_status(self, value: str) -> bool:
        removed = self.statuses.remove(value)
        if removed:
            await self._save_statuses()
        return removed

    async def _save_statuses(self) -> None:
        try:
            await self.engine.save_custom_statuses(self.statuses.custom)
        except TransientIOError as e:
            logger.warning("Failed to save custom statuses: %s", e)
            self.notifier.notify("Failed to save custom statuses")

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def export_backup(self) -> str:
        return dump_backup(export_backup(self.store.snapshot(), self.statuses.custom))

    async def import_backup(self, text: str) -> ImportReport:
        """Validate a backup, then replace the registry (and catalog, if present).

        Raises InvalidInputError before anything is replaced.
        """
        report = parse_backup(text)
        catalog = None
        if report.custom_statuses is not None:
            catalog = ProjectStatusCatalog(report.custom_statuses)

        self.store.replace_all(report.websites)
        if catalog is not None:
            self.statuses = catalog
            await self._save_statuses()

        logger.info("Imported %d websites", len(report.websites))
        if report.duplicate_urls:
            self.notifier.notify(
                f"Imported {len(report.websites)} websites; "
                f"{len(report.duplicate_urls)} URLs appear more than once",
                Level.WARNING,
            )
        return report


def _check_industry(industry: str) -> None:
    if industry not in INDUSTRIES:
        msg = f"unknown industry '{industry}' (expected one of: {', '.join(INDUSTRIES)})"
        raise InvalidInputError(msg)
