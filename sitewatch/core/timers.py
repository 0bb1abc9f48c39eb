"""Timer abstraction behind every delay in the dashboard.

Debounce windows, the bulk-job grace period and notification expiry all go
through a ``Timer`` so they can run on the asyncio loop in production and on
a manual clock in tests.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timer(ABC):
    """Schedules plain callbacks after a delay in seconds."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds unless the handle is cancelled."""


class AsyncioTimer(Timer):
    """Timer backed by the running event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(max(delay, 0.0), callback)
