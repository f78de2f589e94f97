"""ReminderSchedule entity model."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from notifier.models.notification import ensure_utc, utcnow


class ReminderFrequency(str, Enum):
    """How often a reminder schedule fires."""

    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"


class ReminderSchedule(SQLModel, table=True):
    """Reminder schedule owned by ReminderScheduler.

    ONCE schedules are deleted after firing; the others advance
    scheduled_for and persist until cancelled.
    """

    __tablename__ = "reminder_schedules"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    task_id: str = Field(max_length=64, index=True)
    server_id: str = Field(max_length=64, index=True)
    frequency: ReminderFrequency = Field(default=ReminderFrequency.ONCE)
    scheduled_for: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False)
    )
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    def normalize_timestamps(self) -> "ReminderSchedule":
        self.scheduled_for = ensure_utc(self.scheduled_for)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)
        return self
