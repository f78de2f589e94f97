"""Record store interfaces consumed by the dispatcher and scheduler.

The stores are the single source of truth for notification status and
retry bookkeeping. Implementations must give read-after-write consistency
for status and retry_count within a process.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any
from uuid import UUID

from notifier.models import (
    NotificationFilter,
    NotificationRecord,
    NotificationStatus,
    ReminderFrequency,
    ReminderSchedule,
)


class NotificationStore(ABC):
    """Persistence for NotificationRecord."""

    @abstractmethod
    async def create(self, record: NotificationRecord) -> NotificationRecord:
        pass

    @abstractmethod
    async def get(self, notification_id: UUID) -> NotificationRecord | None:
        pass

    @abstractmethod
    async def find_pending_due(self, now: datetime) -> list[NotificationRecord]:
        """PENDING records with scheduled_for <= now."""
        pass

    @abstractmethod
    async def find_retryable(self, max_retries: int) -> list[NotificationRecord]:
        """FAILED records with retry_count < max_retries."""
        pass

    @abstractmethod
    async def update_status(
        self,
        notification_id: UUID,
        status: NotificationStatus,
        message: str | None = None,
        attempted_at: datetime | None = None,
    ) -> None:
        """Set status and last_error; stamps last_attempt when given."""
        pass

    @abstractmethod
    async def increment_retry_count(self, notification_id: UUID) -> int:
        """Increment retry_count and return the new value."""
        pass

    @abstractmethod
    async def mark_delivered(
        self,
        notification_id: UUID,
        result: dict[str, Any] | None = None,
        delivered_at: datetime | None = None,
    ) -> None:
        pass

    @abstractmethod
    async def find_by_filters(
        self, filters: NotificationFilter
    ) -> list[NotificationRecord]:
        pass

    @abstractmethod
    async def cleanup_before(self, before: datetime) -> int:
        """Delete terminal records created before ``before``; return count."""
        pass


class ReminderScheduleStore(ABC):
    """Persistence for ReminderSchedule."""

    @abstractmethod
    async def create_schedule(
        self,
        task_id: str,
        server_id: str,
        frequency: ReminderFrequency,
        scheduled_for: datetime,
    ) -> ReminderSchedule:
        pass

    @abstractmethod
    async def get_due(self, now: datetime) -> list[ReminderSchedule]:
        pass

    @abstractmethod
    async def update_next(self, schedule_id: UUID, scheduled_for: datetime) -> None:
        pass

    @abstractmethod
    async def delete(self, schedule_id: UUID) -> None:
        pass

    @abstractmethod
    async def delete_by_task(self, task_id: str) -> int:
        pass

    @abstractmethod
    async def list_by_task(self, task_id: str) -> list[ReminderSchedule]:
        pass
