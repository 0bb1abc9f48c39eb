"""Progress event channel: one subscription to the engine's progress stream."""

import logging
from collections.abc import Callable
from types import TracebackType
from typing import Any

from pydantic import ValidationError

from sitewatch.core.events import PROGRESS_CHANNEL, EventBus, Subscription
from sitewatch.core.schemas import ScreenshotProgress

logger = logging.getLogger(__name__)

ProgressHandler = Callable[[ScreenshotProgress], None]


class ProgressChannel:
    """Owns a single subscription and parses raw payloads into ScreenshotProgress.

    Malformed payloads are logged and dropped; only well-formed snapshots
    reach the handler. Must be closed when its owner is torn down.
    """

    def __init__(self, bus: EventBus, channel: str = PROGRESS_CHANNEL) -> None:
        self._bus = bus
        self._channel = channel
        self._subscription: Subscription | None = None

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    def open(self, handler: ProgressHandler) -> None:
        if self.is_open:
            msg = f"progress channel '{self._channel}' is already open"
            raise RuntimeError(msg)

        def _deliver(payload: Any) -> None:
            try:
                progress = (
                    payload
                    if isinstance(payload, ScreenshotProgress)
                    else ScreenshotProgress.model_validate(payload)
                )
            except ValidationError as e:
                logger.warning("Dropping malformed progress event: %s", e)
                return
            handler(progress)

        self._subscription = self._bus.subscribe(self._channel, _deliver)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def __enter__(self) -> "ProgressChannel":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
