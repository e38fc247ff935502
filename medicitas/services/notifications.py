"""
User-visible, non-blocking notifications.

Every backend failure that reaches the workflow or the appointment list
ends here instead of propagating further.
"""

from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from loguru import logger
from pydantic import BaseModel, Field


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class Notification(BaseModel):
    """A toast-style message shown to the user."""

    level: NotificationLevel
    title: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class Notifier:
    """
    Collects notifications and forwards them to an optional sink
    (the UI layer).
    """

    def __init__(self, sink: Optional[Callable[[Notification], None]] = None):
        self._sink = sink
        self.notifications: List[Notification] = []

    def _emit(self, level: NotificationLevel, title: str, description: Optional[str]) -> Notification:
        notification = Notification(level=level, title=title, description=description)
        self.notifications.append(notification)
        logger.info(f"Notification [{level.value}] {title}" + (f": {description}" if description else ""))
        if self._sink is not None:
            self._sink(notification)
        return notification

    def success(self, title: str, description: Optional[str] = None) -> Notification:
        return self._emit(NotificationLevel.SUCCESS, title, description)

    def error(self, title: str, description: Optional[str] = None) -> Notification:
        return self._emit(NotificationLevel.ERROR, title, description)

    def info(self, title: str, description: Optional[str] = None) -> Notification:
        return self._emit(NotificationLevel.INFO, title, description)

    @property
    def errors(self) -> List[Notification]:
        return [n for n in self.notifications if n.level == NotificationLevel.ERROR]

    def clear(self) -> None:
        self.notifications.clear()
