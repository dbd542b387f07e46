"""In-memory store of the hydrated inbox."""

import logging
import threading
from typing import Iterable, Optional, Tuple

from .models import Notification

logger = logging.getLogger(__name__)


class NotificationCache:
    """
    Single owner of the current hydrated notifications.

    Writers are serialized by a lock. The collection itself is an immutable
    tuple that is swapped by reference, so a reader never sees a half-applied
    write and never waits longer than the swap.
    """

    def __init__(self, notifications: Iterable[Notification] = ()):
        self._lock = threading.Lock()
        self._items: Tuple[Notification, ...] = _dedupe(notifications)

    def replace(self, notifications: Iterable[Notification]) -> None:
        """Swap the whole collection. Keeps the first entry of any repeated id."""
        items = _dedupe(notifications)
        with self._lock:
            self._items = items
        logger.debug(f"Cache replaced with {len(items)} notification(s)")

    def remove(self, notification_id: str) -> bool:
        """
        Remove the notification with this id.

        Returns:
            True if an entry was removed; False if it was not present.
        """
        with self._lock:
            if not any(n.id == notification_id for n in self._items):
                return False
            self._items = tuple(n for n in self._items if n.id != notification_id)
        logger.debug(f"Removed notification {notification_id} from cache")
        return True

    def snapshot(self) -> Tuple[Notification, ...]:
        """Read-only view of the current collection, in display order."""
        with self._lock:
            return self._items

    def get(self, index: int) -> Optional[Notification]:
        """Notification at a display position, or None if out of range."""
        items = self.snapshot()
        if 0 <= index < len(items):
            return items[index]
        return None

    def find(self, notification_id: str) -> Optional[Notification]:
        for notification in self.snapshot():
            if notification.id == notification_id:
                return notification
        return None

    def __len__(self) -> int:
        return len(self.snapshot())


def _dedupe(notifications: Iterable[Notification]) -> Tuple[Notification, ...]:
    seen = set()
    unique = []
    for notification in notifications:
        if notification.id in seen:
            continue
        seen.add(notification.id)
        unique.append(notification)
    return tuple(unique)
