"""Typed inputs crossing into the notification core."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from notifier.models import (
    NotificationChannel,
    NotificationKind,
    NotificationRecord,
    ensure_utc,
    utcnow,
)


class EventType(str, Enum):
    """Versioned event types accepted by the intake."""

    REMINDER_DUE = "reminder.due.v1"
    NOTIFICATION_REQUESTED = "notification.requested.v1"


class ReminderDue(BaseModel):
    """Due signal emitted by ReminderScheduler for a fired schedule."""

    event_type: EventType = EventType.REMINDER_DUE
    task_id: str
    schedule_id: UUID
    server_id: str
    timestamp: datetime = Field(default_factory=utcnow)


class NotificationRequest(BaseModel):
    """Request to create a notification record."""

    event_type: EventType = EventType.NOTIFICATION_REQUESTED
    kind: NotificationKind
    template: str
    data: dict[str, Any] = Field(default_factory=dict)
    channel: NotificationChannel
    recipient: str
    server_id: str | None = None
    scheduled_for: datetime | None = Field(
        default=None, description="Defaults to immediately"
    )
    recurrence_pattern: str | None = None
    recurrence_end_date: datetime | None = None

    def to_record(self, now: datetime | None = None) -> NotificationRecord:
        """Build the PENDING record this request describes."""
        return NotificationRecord(
            kind=self.kind,
            template=self.template,
            data=self.data,
            channel=self.channel,
            recipient=self.recipient,
            server_id=self.server_id,
            scheduled_for=ensure_utc(self.scheduled_for or now or utcnow()),
            is_recurring=self.recurrence_pattern is not None,
            recurrence_pattern=self.recurrence_pattern,
            recurrence_end_date=ensure_utc(self.recurrence_end_date),
        )
