import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from sqlmodel import Session, select

from models.database.db_models import ActivityNotification, NotificationKind, ProgressOwner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    kind: NotificationKind
    recipient: ProgressOwner
    activity_id: int
    payload: Dict[str, Any] = field(default_factory=dict)


class NotificationSink:
    """Where logical events go; delivery is someone else's job."""

    def emit(self, event: NotificationEvent):
        raise NotImplementedError


class OutboxNotificationSink(NotificationSink):
    """Writes events as outbox rows inside the caller's transaction."""

    def __init__(self, db: Session, clock=None):
        self._db = db
        self._clock = clock

    def emit(self, event: NotificationEvent):
        row = ActivityNotification(
            kind=event.kind,
            recipient_kind=event.recipient.kind,
            recipient_id=event.recipient.id,
            activity_id=event.activity_id,
            payload=event.payload or None,
        )
        if self._clock is not None:
            row.created_at = self._clock.now()
        self._db.add(row)
        logger.debug("Queued %s for %s %s", event.kind.value, event.recipient.kind.value, event.recipient.id)


class MemoryNotificationSink(NotificationSink):
    def __init__(self):
        self.events: List[NotificationEvent] = []

    def emit(self, event: NotificationEvent):
        self.events.append(event)


def notification_already_sent(db: Session, kind: NotificationKind, recipient: ProgressOwner, activity_id: int) -> bool:
    existing = db.exec(
        select(ActivityNotification.id).where(
            ActivityNotification.kind == kind,
            ActivityNotification.recipient_kind == recipient.kind,
            ActivityNotification.recipient_id == recipient.id,
            ActivityNotification.activity_id == activity_id,
        )
    ).first()
    return existing is not None
