"""Registry store: the in-memory, ordered list of tracked websites.

Single source of truth for the dashboard. Mutators are synchronous and
all-or-nothing; each successful mutation is announced on the store's change
channel so the persistence synchronizer can schedule a write.

Stale ids are tolerated: updating or removing a website that is no longer
in the registry is a no-op, because in-flight capture and check callbacks
routinely race with deletion.
"""

import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from enum import Enum
from typing import Any

from pydantic import ValidationError

from sitewatch.core.errors import InvalidInputError, LoadError, TransientIOError
from sitewatch.core.events import EventBus, Subscription
from sitewatch.core.notifications import Notifier
from sitewatch.core.schemas import WebsiteRecord, hostname_of, validate_url
from sitewatch.engine.base import Engine

logger = logging.getLogger(__name__)

REGISTRY_CHANNEL = "registry-changed"

_TRANSIENT_FIELDS = frozenset({"is_capturing"})


class ChangeKind(str, Enum):
    LOADED = "loaded"  # replaced from storage, nothing to write back
    MUTATED = "mutated"  # must reach storage
    TRANSIENT = "transient"  # only transient flags changed


class RegistryStore:
    """Ordered website registry with change notifications.

    Usage::

        store = RegistryStore(engine, notifier)
        await store.load()
        site = store.add("https://example.com")
        store.update_one(site.id, {"display_name": "Example"})
    """

    def __init__(self, engine: Engine, notifier: Notifier | None = None) -> None:
        self._engine = engine
        self._notifier = notifier
        self._records: list[WebsiteRecord] = []
        self._changes = EventBus()
        self._last_id = 0

    def __len__(self) -> int:
        return len(self._records)

    def snapshot(self) -> list[WebsiteRecord]:
        """Copy of the registry; records are frozen so the copy is safe to hold."""
        return list(self._records)

    def get(self, website_id: int) -> WebsiteRecord | None:
        index = self._index_of(website_id)
        return None if index is None else self._records[index]

    def subscribe(self, listener: Callable[[ChangeKind], None]) -> Subscription:
        return self._changes.subscribe(REGISTRY_CHANNEL, listener)

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def load(self) -> list[WebsiteRecord]:
        """Fetch the registry from the engine and swap it in.

        On failure the previous in-memory contents are kept and LoadError is raised.
        """
        try:
            records = await self._engine.load_registry()
        except TransientIOError as e:
            logger.warning(
                "Registry load failed, keeping %d in-memory websites: %s",
                len(self._records), e,
            )
            if isinstance(e, LoadError):
                raise
            raise LoadError(str(e)) from e

        try:
            _ensure_unique_ids(records)
        except InvalidInputError as e:
            msg = f"stored registry is malformed: {e}"
            raise LoadError(msg) from e

        self._swap(records, ChangeKind.LOADED)
        logger.info("Loaded %d websites", len(records))
        return self.snapshot()

    def replace_all(self, records: Iterable[WebsiteRecord]) -> None:
        """Atomically swap the whole registry. Raises InvalidInputError on duplicate ids."""
        records = list(records)
        _ensure_unique_ids(records)
        self._swap(records, ChangeKind.MUTATED)

    # ------------------------------------------------------------------
    # Single-record mutators
    # ------------------------------------------------------------------

    def add(
        self,
        url: str,
        *,
        industry: str = "general",
        display_name: str | None = None,
    ) -> WebsiteRecord:
        """Create a website with a fresh id and append it to the registry."""
        try:
            url = validate_url(url)
            record = WebsiteRecord(
                id=self._next_id(),
                url=url,
                display_name=display_name or hostname_of(url),
                industry=industry,
            )
        except ValueError as e:
            raise InvalidInputError(str(e)) from e

        self._records.append(record)
        logger.info("Added website %d (%s)", record.id, record.url)
        self._emit(ChangeKind.MUTATED)
        return record

    def update_one(self, website_id: int, patch: Mapping[str, Any]) -> WebsiteRecord | None:
        """Merge ``patch`` into a record. Returns None if the id is absent."""
        if patch.get("id", website_id) != website_id:
            msg = "website id cannot be changed"
            raise InvalidInputError(msg)
        unknown = set(patch) - set(WebsiteRecord.model_fields)
        if unknown:
            msg = f"unknown website fields: {sorted(unknown)}"
            raise InvalidInputError(msg)

        index = self._index_of(website_id)
        if index is None:
            logger.debug("Ignoring update for missing website %d", website_id)
            return None

        current = self._records[index]
        try:
            updated = WebsiteRecord.model_validate({**current.model_dump(), **patch})
        except ValidationError as e:
            msg = f"invalid update for website {website_id}: {e}"
            raise InvalidInputError(msg) from e

        if updated == current:
            return current
        self._records[index] = updated
        kind = ChangeKind.TRANSIENT if set(patch) <= _TRANSIENT_FIELDS else ChangeKind.MUTATED
        self._emit(kind)
        return updated

    def remove_one(self, website_id: int) -> bool:
        index = self._index_of(website_id)
        if index is None:
            logger.debug("Ignoring removal of missing website %d", website_id)
            return False
        removed = self._records.pop(index)
        logger.info("Removed website %d (%s)", removed.id, removed.url)
        self._emit(ChangeKind.MUTATED)
        return True

    # ------------------------------------------------------------------
    # Optimistic single-field mutators
    # ------------------------------------------------------------------

    async def upsert_favorite(self, website_id: int, favorite: bool) -> WebsiteRecord | None:
        return await self._optimistic(
            website_id, "favorite", favorite, self._engine.update_favorite,
        )

    async def toggle_favorite(self, website_id: int) -> WebsiteRecord | None:
        record = self.get(website_id)
        if record is None:
            return None
        return await self.upsert_favorite(website_id, not record.favorite)

    async def upsert_industry(self, website_id: int, industry: str) -> WebsiteRecord | None:
        return await self._optimistic(
            website_id, "industry", industry, self._engine.update_industry,
        )

    async def upsert_project_status(
        self, website_id: int, project_status: str,
    ) -> WebsiteRecord | None:
        return await self._optimistic(
            website_id, "project_status", project_status, self._engine.update_project_status,
        )

    async def _optimistic(
        self,
        website_id: int,
        field: str,
        value: Any,
        command: Callable[[int, Any], Awaitable[None]],
    ) -> WebsiteRecord | None:
        """Apply locally first, then tell the engine. A failed call is reported, never rolled back."""
        updated = self.update_one(website_id, {field: value})
        if updated is None:
            return None
        try:
            await command(website_id, getattr(updated, field))
        except TransientIOError as e:
            label = field.replace("_", " ")
            logger.warning("Failed to update %s for website %d: %s", label, website_id, e)
            if self._notifier is not None:
                self._notifier.notify(f"Failed to update {label} for {updated.display_name}")
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _swap(self, records: list[WebsiteRecord], kind: ChangeKind) -> None:
        # in-flight captures keep their flag across a reload
        capturing = {r.id for r in self._records if r.is_capturing}
        self._records = [
            r.model_copy(update={"is_capturing": r.id in capturing}) for r in records
        ]
        self._last_id = max(self._last_id, max((r.id for r in records), default=0))
        self._emit(kind)

    def _next_id(self) -> int:
        """Time-derived id, strictly above every id this store has seen."""
        new_id = max(int(time.time() * 1000), self._last_id + 1)
        self._last_id = new_id
        return new_id

    def _index_of(self, website_id: int) -> int | None:
        for i, record in enumerate(self._records):
            if record.id == website_id:
                return i
        return None

    def _emit(self, kind: ChangeKind) -> None:
        self._changes.emit(REGISTRY_CHANNEL, kind)


def _ensure_unique_ids(records: list[WebsiteRecord]) -> None:
    seen: set[int] = set()
    for record in records:
        if record.id in seen:
            msg = f"duplicate website id {record.id}"
            raise InvalidInputError(msg)
        seen.add(record.id)
