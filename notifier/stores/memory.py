"""In-process record stores for development and tests.

Records are copied on the way in and out so callers never share state
with the store, matching what a database-backed store gives.
"""

import copy
from datetime import datetime
from typing import Any
from uuid import UUID

from notifier.errors import StoreError
from notifier.models import (
    TERMINAL_STATUSES,
    NotificationFilter,
    NotificationRecord,
    NotificationStatus,
    ReminderFrequency,
    ReminderSchedule,
    ensure_utc,
    utcnow,
)
from notifier.stores.base import NotificationStore, ReminderScheduleStore


def _clone_record(record: NotificationRecord) -> NotificationRecord:
    return NotificationRecord(**copy.deepcopy(record.model_dump())).normalize_timestamps()


def _clone_schedule(schedule: ReminderSchedule) -> ReminderSchedule:
    return ReminderSchedule(**schedule.model_dump()).normalize_timestamps()


def _processing_order(record: NotificationRecord) -> tuple[datetime, datetime]:
    return (ensure_utc(record.scheduled_for), ensure_utc(record.created_at))


class InMemoryNotificationStore(NotificationStore):
    """Dict-backed NotificationStore."""

    def __init__(self) -> None:
        self._records: dict[UUID, NotificationRecord] = {}

    def _require(self, notification_id: UUID) -> NotificationRecord:
        record = self._records.get(notification_id)
        if record is None:
            raise StoreError(f"Notification {notification_id} not found")
        return record

    async def create(self, record: NotificationRecord) -> NotificationRecord:
        stored = _clone_record(record)
        self._records[stored.id] = stored
        return _clone_record(stored)

    async def get(self, notification_id: UUID) -> NotificationRecord | None:
        record = self._records.get(notification_id)
        return _clone_record(record) if record else None

    async def find_pending_due(self, now: datetime) -> list[NotificationRecord]:
        due = [
            r
            for r in self._records.values()
            if r.status == NotificationStatus.PENDING
            and ensure_utc(r.scheduled_for) <= now
        ]
        return [_clone_record(r) for r in sorted(due, key=_processing_order)]

    async def find_retryable(self, max_retries: int) -> list[NotificationRecord]:
        failed = [
            r
            for r in self._records.values()
            if r.status == NotificationStatus.FAILED and r.retry_count < max_retries
        ]
        return [_clone_record(r) for r in sorted(failed, key=_processing_order)]

    async def update_status(
        self,
        notification_id: UUID,
        status: NotificationStatus,
        message: str | None = None,
        attempted_at: datetime | None = None,
    ) -> None:
        record = self._require(notification_id)
        record.status = status
        record.last_error = message
        if attempted_at is not None:
            record.last_attempt = attempted_at
        record.updated_at = utcnow()

    async def increment_retry_count(self, notification_id: UUID) -> int:
        record = self._require(notification_id)
        record.retry_count += 1
        record.updated_at = utcnow()
        return record.retry_count

    async def mark_delivered(
        self,
        notification_id: UUID,
        result: dict[str, Any] | None = None,
        delivered_at: datetime | None = None,
    ) -> None:
        record = self._require(notification_id)
        delivered_at = delivered_at or utcnow()
        record.status = NotificationStatus.SENT
        record.delivery_result = copy.deepcopy(result)
        record.delivered_at = delivered_at
        record.last_attempt = delivered_at
        record.last_error = None
        record.updated_at = utcnow()

    async def find_by_filters(
        self, filters: NotificationFilter
    ) -> list[NotificationRecord]:
        matched = sorted(
            (r for r in self._records.values() if filters.matches(r)),
            key=_processing_order,
        )
        if filters.limit is not None:
            matched = matched[: filters.limit]
        return [_clone_record(r) for r in matched]

    async def cleanup_before(self, before: datetime) -> int:
        stale = [
            r.id
            for r in self._records.values()
            if r.status in TERMINAL_STATUSES and ensure_utc(r.created_at) < before
        ]
        for notification_id in stale:
            del self._records[notification_id]
        return len(stale)


class InMemoryReminderScheduleStore(ReminderScheduleStore):
    """Dict-backed ReminderScheduleStore."""

    def __init__(self) -> None:
        self._schedules: dict[UUID, ReminderSchedule] = {}

    async def create_schedule(
        self,
        task_id: str,
        server_id: str,
        frequency: ReminderFrequency,
        scheduled_for: datetime,
    ) -> ReminderSchedule:
        schedule = ReminderSchedule(
            task_id=task_id,
            server_id=server_id,
            frequency=frequency,
            scheduled_for=scheduled_for,
        )
        self._schedules[schedule.id] = schedule
        return _clone_schedule(schedule)

    async def add(self, schedule: ReminderSchedule) -> None:
        """Insert a prepared schedule as-is."""
        self._schedules[schedule.id] = schedule

    async def get_due(self, now: datetime) -> list[ReminderSchedule]:
        due = [
            s for s in self._schedules.values() if ensure_utc(s.scheduled_for) <= now
        ]
        due.sort(key=lambda s: ensure_utc(s.scheduled_for))
        return [_clone_schedule(s) for s in due]

    async def update_next(self, schedule_id: UUID, scheduled_for: datetime) -> None:
        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            raise StoreError(f"Reminder schedule {schedule_id} not found")
        schedule.scheduled_for = scheduled_for
        schedule.updated_at = utcnow()

    async def delete(self, schedule_id: UUID) -> None:
        self._schedules.pop(schedule_id, None)

    async def delete_by_task(self, task_id: str) -> int:
        doomed = [s.id for s in self._schedules.values() if s.task_id == task_id]
        for schedule_id in doomed:
            del self._schedules[schedule_id]
        return len(doomed)

    async def list_by_task(self, task_id: str) -> list[ReminderSchedule]:
        return [
            _clone_schedule(s)
            for s in self._schedules.values()
            if s.task_id == task_id
        ]
