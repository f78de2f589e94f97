"""NotificationRecord entity model and notification payload types."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field as PydanticField, TypeAdapter
from sqlalchemy import JSON, Column, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class NotificationChannel(str, Enum):
    """Notification delivery channels."""

    CHAT = "chat"
    EMAIL = "email"
    SMS = "sms"
    OTHER = "other"


class NotificationStatus(str, Enum):
    """Notification delivery status.

    PENDING is initial. SENT, PERMANENTLY_FAILED and ERROR are terminal.
    FAILED is retried until the retry budget is spent.
    """

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    PERMANENTLY_FAILED = "permanently_failed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        NotificationStatus.SENT,
        NotificationStatus.PERMANENTLY_FAILED,
        NotificationStatus.ERROR,
    }
)


class NotificationKind(str, Enum):
    """What a notification is about; selects the payload shape."""

    TASK_REMINDER = "task_reminder"
    TASK_DUE = "task_due"
    TASK_OVERDUE = "task_overdue"
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    SERVER_EVENT = "server_event"
    USER_EVENT = "user_event"
    SYSTEM_ALERT = "system_alert"


# -----------------------------------------------------------------------------
# Payload types (tagged union over kind)
# -----------------------------------------------------------------------------


class TaskNotificationData(BaseModel):
    kind: Literal[
        "task_reminder", "task_due", "task_overdue", "task_assigned", "task_completed"
    ]
    task: dict[str, Any]
    completed_by: str | None = None


class ServerNotificationData(BaseModel):
    kind: Literal["server_event"]
    server_id: str
    server_name: str
    action: str
    actor: str | None = None


class UserNotificationData(BaseModel):
    kind: Literal["user_event"]
    user_id: str
    username: str
    action: str
    details: dict[str, str] = PydanticField(default_factory=dict)


class SystemNotificationData(BaseModel):
    kind: Literal["system_alert"]
    level: Literal["INFO", "WARNING", "ERROR"] = "INFO"
    message: str
    details: dict[str, str] = PydanticField(default_factory=dict)


NotificationData = Annotated[
    Union[
        TaskNotificationData,
        ServerNotificationData,
        UserNotificationData,
        SystemNotificationData,
    ],
    PydanticField(discriminator="kind"),
]

_notification_data_adapter = TypeAdapter(NotificationData)


def parse_notification_data(data: dict[str, Any]) -> NotificationData:
    """Validate a raw data bag against the payload type for its kind."""
    return _notification_data_adapter.validate_python(data)


# -----------------------------------------------------------------------------
# Table model
# -----------------------------------------------------------------------------


class NotificationRecord(SQLModel, table=True):
    """Persisted notification with delivery and retry bookkeeping.

    Status and retry_count change only through NotificationDispatcher.
    """

    __tablename__ = "notifications"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    kind: NotificationKind = Field(default=NotificationKind.SYSTEM_ALERT)
    template: str = Field(max_length=100)
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSONType))
    channel: NotificationChannel = Field(index=True)
    recipient: str = Field(max_length=500)
    server_id: str | None = Field(default=None, max_length=64, index=True)

    scheduled_for: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )
    status: NotificationStatus = Field(default=NotificationStatus.PENDING, index=True)
    retry_count: int = Field(default=0)
    last_attempt: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    last_error: str | None = Field(default=None)
    delivery_result: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSONType)
    )
    delivered_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )

    # Recurrence
    is_recurring: bool = Field(default=False)
    recurrence_pattern: str | None = Field(default=None, max_length=50)
    recurrence_end_date: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    previous_id: UUID | None = Field(default=None)

    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    def typed_data(self) -> NotificationData:
        """Parse the stored data bag into its payload model."""
        return parse_notification_data({"kind": self.kind.value, **self.data})

    def template_data(self) -> dict[str, Any]:
        """Data handed to the template renderer, without unset values."""
        return {key: value for key, value in self.data.items() if value is not None}

    def is_recurrence_active(self, now: datetime) -> bool:
        if not self.is_recurring or not self.recurrence_pattern:
            return False
        if self.recurrence_end_date is None:
            return True
        return now <= ensure_utc(self.recurrence_end_date)

    def normalize_timestamps(self) -> "NotificationRecord":
        """Make every datetime column aware UTC (sqlite drops tzinfo)."""
        for name in (
            "scheduled_for",
            "last_attempt",
            "delivered_at",
            "recurrence_end_date",
            "created_at",
            "updated_at",
        ):
            setattr(self, name, ensure_utc(getattr(self, name)))
        return self


class NotificationFilter(BaseModel):
    """Query filter for NotificationStore.find_by_filters."""

    statuses: list[NotificationStatus] | None = None
    channels: list[NotificationChannel] | None = None
    kinds: list[NotificationKind] | None = None
    server_id: str | None = None
    scheduled_before: datetime | None = None
    scheduled_after: datetime | None = None
    max_retries: int | None = None
    limit: int | None = None

    def cache_key(self) -> str:
        return self.model_dump_json(exclude_none=True)

    def matches(self, record: NotificationRecord) -> bool:
        """Evaluate the filter in memory."""
        if self.statuses is not None and record.status not in self.statuses:
            return False
        if self.channels is not None and record.channel not in self.channels:
            return False
        if self.kinds is not None and record.kind not in self.kinds:
            return False
        if self.server_id is not None and record.server_id != self.server_id:
            return False
        scheduled_for = ensure_utc(record.scheduled_for)
        if self.scheduled_before is not None and scheduled_for > ensure_utc(
            self.scheduled_before
        ):
            return False
        if self.scheduled_after is not None and scheduled_for < ensure_utc(
            self.scheduled_after
        ):
            return False
        if self.max_retries is not None and record.retry_count >= self.max_retries:
            return False
        return True
