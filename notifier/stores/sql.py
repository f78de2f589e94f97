"""SQLModel-backed record stores.

All datetimes are written as UTC so that comparisons stay correct on
backends that drop tzinfo (sqlite).
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from notifier.db.session import get_session
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

logger = logging.getLogger(__name__)


class SqlNotificationStore(NotificationStore):
    """NotificationStore on an async SQLAlchemy engine."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _fetch(self, statement) -> list[NotificationRecord]:
        async with get_session(self._session_factory) as session:
            rows = (await session.exec(statement)).all()
            return [row.normalize_timestamps() for row in rows]

    async def _load(self, session: AsyncSession, notification_id: UUID) -> NotificationRecord:
        record = await session.get(NotificationRecord, notification_id)
        if record is None:
            raise StoreError(f"Notification {notification_id} not found")
        return record

    async def create(self, record: NotificationRecord) -> NotificationRecord:
        record.normalize_timestamps()
        async with get_session(self._session_factory) as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        return record.normalize_timestamps()

    async def get(self, notification_id: UUID) -> NotificationRecord | None:
        async with get_session(self._session_factory) as session:
            record = await session.get(NotificationRecord, notification_id)
            return record.normalize_timestamps() if record else None

    async def find_pending_due(self, now: datetime) -> list[NotificationRecord]:
        return await self._fetch(
            select(NotificationRecord)
            .where(NotificationRecord.status == NotificationStatus.PENDING)
            .where(NotificationRecord.scheduled_for <= ensure_utc(now))
            .order_by(NotificationRecord.scheduled_for, NotificationRecord.created_at)
        )

    async def find_retryable(self, max_retries: int) -> list[NotificationRecord]:
        return await self._fetch(
            select(NotificationRecord)
            .where(NotificationRecord.status == NotificationStatus.FAILED)
            .where(NotificationRecord.retry_count < max_retries)
            .order_by(NotificationRecord.scheduled_for, NotificationRecord.created_at)
        )

    async def update_status(
        self,
        notification_id: UUID,
        status: NotificationStatus,
        message: str | None = None,
        attempted_at: datetime | None = None,
    ) -> None:
        async with get_session(self._session_factory) as session:
            record = await self._load(session, notification_id)
            record.status = status
            record.last_error = message
            if attempted_at is not None:
                record.last_attempt = ensure_utc(attempted_at)
            record.updated_at = utcnow()
            session.add(record)
            await session.commit()

    async def increment_retry_count(self, notification_id: UUID) -> int:
        async with get_session(self._session_factory) as session:
            record = await self._load(session, notification_id)
            record.retry_count += 1
            record.updated_at = utcnow()
            session.add(record)
            await session.commit()
            return record.retry_count

    async def mark_delivered(
        self,
        notification_id: UUID,
        result: dict[str, Any] | None = None,
        delivered_at: datetime | None = None,
    ) -> None:
        delivered_at = ensure_utc(delivered_at or utcnow())
        async with get_session(self._session_factory) as session:
            record = await self._load(session, notification_id)
            record.status = NotificationStatus.SENT
            record.delivery_result = result
            record.delivered_at = delivered_at
            record.last_attempt = delivered_at
            record.last_error = None
            record.updated_at = utcnow()
            session.add(record)
            await session.commit()

    async def find_by_filters(
        self, filters: NotificationFilter
    ) -> list[NotificationRecord]:
        statement = select(NotificationRecord)
        if filters.statuses is not None:
            statement = statement.where(col(NotificationRecord.status).in_(filters.statuses))
        if filters.channels is not None:
            statement = statement.where(col(NotificationRecord.channel).in_(filters.channels))
        if filters.kinds is not None:
            statement = statement.where(col(NotificationRecord.kind).in_(filters.kinds))
        if filters.server_id is not None:
            statement = statement.where(NotificationRecord.server_id == filters.server_id)
        if filters.scheduled_before is not None:
            statement = statement.where(
                NotificationRecord.scheduled_for <= ensure_utc(filters.scheduled_before)
            )
        if filters.scheduled_after is not None:
            statement = statement.where(
                NotificationRecord.scheduled_for >= ensure_utc(filters.scheduled_after)
            )
        if filters.max_retries is not None:
            statement = statement.where(NotificationRecord.retry_count < filters.max_retries)
        statement = statement.order_by(
            NotificationRecord.scheduled_for, NotificationRecord.created_at
        )
        if filters.limit is not None:
            statement = statement.limit(filters.limit)
        return await self._fetch(statement)

    async def cleanup_before(self, before: datetime) -> int:
        async with get_session(self._session_factory) as session:
            stale = (
                await session.exec(
                    select(NotificationRecord)
                    .where(col(NotificationRecord.status).in_(list(TERMINAL_STATUSES)))
                    .where(NotificationRecord.created_at < ensure_utc(before))
                )
            ).all()
            for record in stale:
                await session.delete(record)
            await session.commit()

        if stale:
            logger.info(
                f"Deleted {len(stale)} old notifications",
                extra={"before": before.isoformat()},
            )
        return len(stale)


class SqlReminderScheduleStore(ReminderScheduleStore):
    """ReminderScheduleStore on an async SQLAlchemy engine."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

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
            scheduled_for=ensure_utc(scheduled_for),
        )
        async with get_session(self._session_factory) as session:
            session.add(schedule)
            await session.commit()
            await session.refresh(schedule)
        return schedule.normalize_timestamps()

    async def get_due(self, now: datetime) -> list[ReminderSchedule]:
        async with get_session(self._session_factory) as session:
            rows = (
                await session.exec(
                    select(ReminderSchedule)
                    .where(ReminderSchedule.scheduled_for <= ensure_utc(now))
                    .order_by(ReminderSchedule.scheduled_for)
                )
            ).all()
            return [row.normalize_timestamps() for row in rows]

    async def update_next(self, schedule_id: UUID, scheduled_for: datetime) -> None:
        async with get_session(self._session_factory) as session:
            schedule = await session.get(ReminderSchedule, schedule_id)
            if schedule is None:
                raise StoreError(f"Reminder schedule {schedule_id} not found")
            schedule.scheduled_for = ensure_utc(scheduled_for)
            schedule.updated_at = utcnow()
            session.add(schedule)
            await session.commit()

    async def delete(self, schedule_id: UUID) -> None:
        async with get_session(self._session_factory) as session:
            schedule = await session.get(ReminderSchedule, schedule_id)
            if schedule is not None:
                await session.delete(schedule)
                await session.commit()

    async def delete_by_task(self, task_id: str) -> int:
        async with get_session(self._session_factory) as session:
            schedules = (
                await session.exec(
                    select(ReminderSchedule).where(ReminderSchedule.task_id == task_id)
                )
            ).all()
            for schedule in schedules:
                await session.delete(schedule)
            await session.commit()
        return len(schedules)

    async def list_by_task(self, task_id: str) -> list[ReminderSchedule]:
        async with get_session(self._session_factory) as session:
            rows = (
                await session.exec(
                    select(ReminderSchedule).where(ReminderSchedule.task_id == task_id)
                )
            ).all()
            return [row.normalize_timestamps() for row in rows]
