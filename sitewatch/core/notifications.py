"""Auto-expiring user notifications (the error-reporting collaborator).

Every backend failure caught at a coordinator or store boundary ends up
here as one notification that disappears after ``ttl`` seconds.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from sitewatch.core.timers import AsyncioTimer, Timer

logger = logging.getLogger(__name__)


class Level(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


_LOG_LEVELS = {
    Level.ERROR: logging.ERROR,
    Level.WARNING: logging.WARNING,
    Level.INFO: logging.INFO,
}


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    level: Level = Level.ERROR
    created_at: datetime = Field(default_factory=datetime.now)


class Notifier:
    """Holds active notifications and expires each one after ``ttl`` seconds."""

    def __init__(self, ttl: float = 5.0, timer: Timer | None = None) -> None:
        self._ttl = ttl
        self._timer = timer or AsyncioTimer()
        self._active: list[Notification] = []
        self._listeners: list[Callable[[Notification], None]] = []

    @property
    def active(self) -> list[Notification]:
        return list(self._active)

    def add_listener(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def notify(self, message: str, level: Level = Level.ERROR) -> Notification:
        notification = Notification(message=message, level=level)
        self._active.append(notification)
        logger.log(_LOG_LEVELS[level], "%s", message)
        for listener in list(self._listeners):
            listener(notification)
        if self._ttl > 0:
            self._timer.call_later(self._ttl, lambda: self.dismiss(notification))
        return notification

    def dismiss(self, notification: Notification) -> None:
        # identity, not equality: two identical messages expire independently
        self._active = [n for n in self._active if n is not notification]

    def clear(self) -> None:
        self._active.clear()
