"""Abstract contract of the external engine that owns storage and does the work.

The dashboard core never checks sites, captures screenshots or touches
storage itself; it issues these commands and listens on ``events``.
Implementations raise the ``TransientIOError`` family from
``sitewatch.core.errors`` and nothing else for expected failures.
"""

from abc import ABC, abstractmethod

from sitewatch.core.events import EventBus
from sitewatch.core.schemas import (
    CheckResult,
    ProjectStatusOption,
    SearchQuery,
    SearchResult,
    WebsiteRecord,
)


class Engine(ABC):
    """Request/response commands plus a named progress event stream."""

    @property
    @abstractmethod
    def events(self) -> EventBus:
        """Bus carrying ``screenshot-progress`` snapshots during a bulk run."""

    @abstractmethod
    async def load_registry(self) -> list[WebsiteRecord]:
        """Return the stored registry. Raises LoadError."""

    @abstractmethod
    async def save_registry(self, records: list[WebsiteRecord]) -> None:
        """Replace the stored registry. Raises SaveError."""

    @abstractmethod
    async def check_site(self, url: str) -> CheckResult:
        """Run an HTTP check. Raises EngineError on network failure or timeout."""

    @abstractmethod
    async def capture_screenshot(self, url: str) -> str:
        """Capture one page and return it as an encoded image. Raises EngineError."""

    @abstractmethod
    async def start_bulk_capture(self) -> None:
        """Acknowledge and begin capturing every stored website in the background.

        Raises EngineError if a bulk capture is already running or the engine
        is unavailable.
        """

    @abstractmethod
    async def cancel_bulk_capture(self) -> None:
        """Ask the running bulk capture to stop. Raises EngineError if none is running."""

    @abstractmethod
    async def update_industry(self, website_id: int, industry: str) -> None: ...

    @abstractmethod
    async def update_project_status(self, website_id: int, project_status: str) -> None: ...

    @abstractmethod
    async def update_favorite(self, website_id: int, favorite: bool) -> None: ...

    @abstractmethod
    async def search(self, query: SearchQuery) -> SearchResult:
        """Server-assisted search over the stored registry."""

    @abstractmethod
    async def suggestions(self, prefix: str) -> list[str]: ...

    @abstractmethod
    async def load_custom_statuses(self) -> list[ProjectStatusOption]: ...

    @abstractmethod
    async def save_custom_statuses(self, statuses: list[ProjectStatusOption]) -> None: ...
