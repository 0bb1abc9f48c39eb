"""Debouncer: run a callback once a burst of triggers has gone quiet."""

import logging
from collections.abc import Callable

from sitewatch.core.timers import AsyncioTimer, Timer, TimerHandle

logger = logging.getLogger(__name__)


class Debouncer:
    """Coalesces rapid ``trigger()`` calls into one callback invocation.

    Every trigger restarts the window; the callback fires ``delay`` seconds
    after the last one.

    Usage::

        debouncer = Debouncer(0.15, save)
        debouncer.trigger()
        debouncer.trigger()   # save() runs once, 150ms after this call
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        timer: Timer | None = None,
    ) -> None:
        self._delay = delay
        self._callback = callback
        self._timer = timer or AsyncioTimer()
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        """Start or restart the debounce window."""
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._timer.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        """Drop a pending invocation, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> bool:
        """Run a pending invocation now. Returns True if one was pending."""
        if self._handle is None:
            return False
        self.cancel()
        self._callback()
        return True

    def _fire(self) -> None:
        self._handle = None
        logger.debug("Debounce window elapsed after %.3fs", self._delay)
        self._callback()
