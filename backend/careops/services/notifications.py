from enum import Enum
from typing import List, Optional
from pydantic import BaseModel


class NotificationVariant(str, Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


class Notification(BaseModel):
    title: str
    description: Optional[str] = None
    variant: NotificationVariant = NotificationVariant.DEFAULT


class Notifier:
    """Collects transient user-facing notices until the caller drains them"""

    def __init__(self):
        self._pending: List[Notification] = []

    def notify(self, title: str, description: Optional[str] = None) -> Notification:
        notification = Notification(title=title, description=description)
        self._pending.append(notification)
        return notification

    def error(self, title: str, description: Optional[str] = None) -> Notification:
        notification = Notification(
            title=title,
            description=description,
            variant=NotificationVariant.DESTRUCTIVE
        )
        self._pending.append(notification)
        return notification

    @property
    def pending(self) -> List[Notification]:
        return list(self._pending)

    def drain(self) -> List[Notification]:
        drained, self._pending = self._pending, []
        return drained
