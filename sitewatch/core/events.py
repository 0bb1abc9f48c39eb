"""Named event channels with explicit subscription handles.

The engine publishes progress snapshots on a named channel and the registry
store publishes change notifications the same way. Handlers run
synchronously in subscription order; a failing handler is logged and does
not stop delivery to the others.
"""

import logging
from collections.abc import Callable
from types import TracebackType
from typing import Any

logger = logging.getLogger(__name__)

PROGRESS_CHANNEL = "screenshot-progress"

Handler = Callable[[Any], None]


class Subscription:
    """Handle returned by ``EventBus.subscribe``; closing it unsubscribes.

    Usage::

        with bus.subscribe("screenshot-progress", on_progress):
            ...  # handler is detached on exit
    """

    def __init__(self, bus: "EventBus", channel: str, handler: Handler) -> None:
        self._bus = bus
        self.channel = channel
        self.handler = handler
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._bus._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


class EventBus:
    """In-process publish/subscribe keyed by channel name."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}

    def subscribe(self, channel: str, handler: Handler) -> Subscription:
        subscription = Subscription(self, channel, handler)
        self._subscriptions.setdefault(channel, []).append(subscription)
        logger.debug("Subscribed to '%s' (%d listeners)", channel, self.listener_count(channel))
        return subscription

    def emit(self, channel: str, payload: Any) -> int:
        """Deliver ``payload`` to every live subscriber. Returns the delivery count."""
        delivered = 0
        for subscription in list(self._subscriptions.get(channel, ())):
            if subscription.closed:
                continue
            try:
                subscription.handler(payload)
            except Exception:
                logger.exception("Handler for '%s' failed", channel)
                continue
            delivered += 1
        return delivered

    def listener_count(self, channel: str) -> int:
        return len(self._subscriptions.get(channel, ()))

    def _remove(self, subscription: Subscription) -> None:
        listeners = self._subscriptions.get(subscription.channel, [])
        if subscription in listeners:
            listeners.remove(subscription)
        logger.debug(
            "Unsubscribed from '%s' (%d listeners)",
            subscription.channel, len(listeners),
        )
