import datetime as dt
from sqlmodel import SQLModel, Field, JSON, Column
from typing import Dict, Optional, Any
from ..enums import NotificationKind, UserRole


class ActivityNotification(SQLModel, table=True):
    """Outbound event waiting for the external dispatcher."""

    id: int | None = Field(default=None, primary_key=True)
    kind: NotificationKind = Field(index=True)
    recipient_kind: UserRole
    recipient_id: int = Field(index=True)
    activity_id: int = Field(foreign_key="activity.id", index=True)
    payload: Dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    dispatched_at: Optional[dt.datetime] = None
