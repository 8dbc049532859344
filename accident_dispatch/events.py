"""
Event sink and notification inbox.

`EventSink` fans frozen event snapshots out to registered callbacks. A
callback that raises is logged and skipped; the others still receive the
event and the engine carries on.

`NotificationInbox` keeps the notifications raised during a session, newest
first. Only the `read` flag changes after a notification is created, and it
changes by swapping in a new snapshot.
"""

from __future__ import annotations

import itertools
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .models import LifecycleEvent, NotificationEvent, NotificationKind, Severity

logger = logging.getLogger("dispatch.events")

LifecycleCallback = Callable[[LifecycleEvent], None]
NotificationCallback = Callable[[NotificationEvent], None]


class EventSink:
    def __init__(self):
        self._lifecycle: List[LifecycleCallback] = []
        self._notifications: List[NotificationCallback] = []

    def subscribe_lifecycle(self, callback: LifecycleCallback) -> Callable[[], None]:
        self._lifecycle.append(callback)
        return lambda: self._discard(self._lifecycle, callback)

    def subscribe_notifications(self, callback: NotificationCallback) -> Callable[[], None]:
        self._notifications.append(callback)
        return lambda: self._discard(self._notifications, callback)

    def publish_lifecycle(self, event: LifecycleEvent):
        self._deliver(self._lifecycle, event, event.kind.value)

    def publish_notification(self, event: NotificationEvent):
        self._deliver(self._notifications, event, "notification")

    @staticmethod
    def _deliver(callbacks, event, topic):
        for callback in list(callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"{topic} subscriber {callback!r} failed: {e}", exc_info=True)

    @staticmethod
    def _discard(callbacks, callback):
        if callback in callbacks:
            callbacks.remove(callback)


class NotificationInbox:
    """Session notifications, newest first."""

    def __init__(self, sink: EventSink, now: Callable[[], datetime]):
        self._sink = sink
        self._now = now
        self._seq = itertools.count(1)
        self._items: Dict[str, NotificationEvent] = {}

    def notify(
        self,
        kind: NotificationKind,
        title: str,
        message: str,
        severity: Optional[Severity] = None,
        incident_id: Optional[str] = None,
    ) -> NotificationEvent:
        created_at = self._now()
        notification = NotificationEvent(
            id=f"notif-{int(created_at.timestamp() * 1000)}-{next(self._seq):04d}",
            kind=kind,
            title=title,
            message=message,
            created_at=created_at,
            severity=severity,
            incident_id=incident_id,
        )
        self._items[notification.id] = notification
        logger.info(f"[{kind.value}] {title}: {message}")
        self._sink.publish_notification(notification)
        return notification

    def notifications(self) -> List[NotificationEvent]:
        return list(reversed(self._items.values()))

    def get(self, notification_id: str) -> Optional[NotificationEvent]:
        return self._items.get(notification_id)

    def unread_count(self) -> int:
        return sum(1 for n in self._items.values() if not n.read)

    def mark_read(self, notification_id: str) -> bool:
        current = self._items.get(notification_id)
        if current is None:
            return False
        if not current.read:
            self._items[notification_id] = current.model_copy(update={"read": True})
        return True

    def mark_all_read(self) -> int:
        changed = 0
        for notification_id, current in list(self._items.items()):
            if not current.read:
                self._items[notification_id] = current.model_copy(update={"read": True})
                changed += 1
        return changed

    def dismiss(self, notification_id: str) -> bool:
        return self._items.pop(notification_id, None) is not None
