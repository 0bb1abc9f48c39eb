"""Persistence synchronizer: debounced, serialized writes of the registry.

Rules:
  - Every persisted mutation restarts a short debounce window.
  - At most one save is in flight. Changes that land while a save is in
    flight produce exactly one follow-up save, issued when the in-flight one
    settles and built from the registry as it is at that moment.
  - A failed save is reported and not retried; the next mutation tries again.
"""

import asyncio
import logging

from sitewatch.core.debounce import Debouncer
from sitewatch.core.errors import TransientIOError
from sitewatch.core.events import Subscription
from sitewatch.core.notifications import Notifier
from sitewatch.core.timers import Timer
from sitewatch.engine.base import Engine
from sitewatch.registry.store import ChangeKind, RegistryStore

logger = logging.getLogger(__name__)


class PersistenceSynchronizer:
    """Sole writer of the registry to durable storage.

    Usage::

        sync = PersistenceSynchronizer(store, engine, delay=0.15)
        sync.start()
        ...
        await sync.flush()   # on shutdown
        sync.stop()
    """

    def __init__(
        self,
        store: RegistryStore,
        engine: Engine,
        *,
        delay: float = 0.15,
        timer: Timer | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._notifier = notifier
        self._debouncer = Debouncer(delay, self._on_window_elapsed, timer)
        self._subscription: Subscription | None = None
        self._task: asyncio.Task[None] | None = None
        self._dirty = False
        self.saves_issued = 0
        self.saves_failed = 0

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> bool:
        """A change is waiting in the debounce window or behind the in-flight save."""
        return self._debouncer.pending or self._dirty

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self._store.subscribe(self._on_change)

    def stop(self) -> None:
        """Detach from the store and drop any pending window (in-flight saves finish)."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self._debouncer.cancel()

    async def flush(self) -> None:
        """Issue any pending save now and wait until nothing is in flight."""
        self._debouncer.flush()
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    def _on_change(self, kind: ChangeKind) -> None:
        if kind is not ChangeKind.MUTATED:
            return
        self._debouncer.trigger()

    def _on_window_elapsed(self) -> None:
        if self.in_flight:
            self._dirty = True
            logger.debug("Save in flight; queueing one follow-up save")
            return
        self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            self._dirty = False
            snapshot = self._store.snapshot()
            self.saves_issued += 1
            logger.debug("Saving %d websites", len(snapshot))
            try:
                await self._engine.save_registry(snapshot)
            except TransientIOError as e:
                self.saves_failed += 1
                logger.warning("Failed to save websites: %s", e)
                if self._notifier is not None:
                    self._notifier.notify("Failed to save websites")
            if not self._dirty:
                return
