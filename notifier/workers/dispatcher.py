"""Notification dispatcher.

Owns the NotificationRecord state machine:

    PENDING  -> SENT                      delivered
    PENDING  -> FAILED (retry_count + 1)  transient delivery failure
    FAILED   -> SENT | FAILED | PERMANENTLY_FAILED
    *        -> PERMANENTLY_FAILED        permanent failure or retries spent
    *        -> ERROR                     template rendering failed

Each tick gathers due PENDING records and retryable FAILED records,
gates FAILED records on the backoff table, renders every candidate,
sends them through the DispatchBatcher grouped by delivery target, then
classifies and persists each outcome in turn.
"""

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from notifier.errors import DeliveryError, RenderError, ScheduleComputationError, StoreError
from notifier.models import (
    DeliveryResult,
    NotificationRecord,
    NotificationStatus,
    ensure_utc,
    utcnow,
)
from notifier.services.recurrence import next_occurrence
from notifier.services.templates import TemplateRenderer
from notifier.stores.base import NotificationStore
from notifier.workers.base import Worker, WorkerResult
from notifier.workers.batcher import DeliveryTarget, DispatchBatcher, DispatchItem

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
BACKOFF_SCHEDULE: tuple[timedelta, ...] = (
    timedelta(minutes=5),
    timedelta(minutes=15),
    timedelta(minutes=30),
    timedelta(minutes=60),
    timedelta(minutes=120),
)
RETENTION_DAYS = 30

RENDER_FAILED_MESSAGE = "Template rendering failed"
MAX_RETRIES_MESSAGE = "Max retry attempts reached"
TRANSIENT_FAILURE_MESSAGE = "Temporary delivery failure - will retry"


class NotificationDispatcher(Worker):
    """Delivers due notifications and applies the retry policy."""

    def __init__(
        self,
        store: NotificationStore,
        renderer: TemplateRenderer,
        batcher: DispatchBatcher,
        max_retries: int = MAX_RETRIES,
        backoff: Sequence[timedelta] = BACKOFF_SCHEDULE,
        clock: Callable[[], datetime] = utcnow,
        timezone: tzinfo = timezone.utc,
    ) -> None:
        super().__init__()
        if not backoff:
            raise ValueError("backoff must list at least one delay")
        self.store = store
        self.renderer = renderer
        self.batcher = batcher
        self.max_retries = max_retries
        self.backoff = tuple(backoff)
        self.timezone = timezone
        self._clock = clock

    @property
    def worker_name(self) -> str:
        return "NotificationDispatcher"

    async def run(self) -> WorkerResult:
        return await self.process_scheduled_notifications()

    # -------------------------------------------------------------------------
    # Gate
    # -------------------------------------------------------------------------

    def backoff_delay(self, retry_count: int) -> timedelta:
        """Delay before the next attempt; counts past the table use its last entry."""
        index = min(max(retry_count, 0), len(self.backoff) - 1)
        return self.backoff[index]

    def should_process_notification(
        self, record: NotificationRecord, now: datetime | None = None
    ) -> bool:
        """Whether a record may be attempted at ``now``."""
        now = ensure_utc(now) if now else self._clock()
        if ensure_utc(record.scheduled_for) > now:
            return False

        if record.status == NotificationStatus.PENDING:
            return True

        if record.status == NotificationStatus.FAILED:
            if record.retry_count >= self.max_retries:
                return False
            if record.last_attempt is None:
                return True
            retry_at = ensure_utc(record.last_attempt) + self.backoff_delay(
                record.retry_count
            )
            return now >= retry_at

        return False

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    async def _candidates(self, now: datetime) -> list[NotificationRecord]:
        pending = await self.store.find_pending_due(now)
        retryable = await self.store.find_retryable(self.max_retries)

        unique: dict[UUID, NotificationRecord] = {}
        for record in [*pending, *retryable]:
            unique.setdefault(record.id, record)
        return sorted(
            unique.values(),
            key=lambda r: (ensure_utc(r.scheduled_for), ensure_utc(r.created_at)),
        )

    async def process_scheduled_notifications(self) -> WorkerResult:
        """Run one dispatcher tick.

        Per-record failures are persisted as status changes and never
        abort the rest of the tick.
        """
        start_time = utcnow()
        now = self._clock()
        processed = 0
        failed = 0
        errors: list[dict[str, Any]] = []

        try:
            candidates = await self._candidates(now)
        except Exception as e:
            self._logger.error(
                f"[{self.worker_name}] Could not load candidates",
                extra={"error": str(e)},
                exc_info=True,
            )
            return WorkerResult.from_counts(
                0,
                0,
                duration_ms=self._elapsed_ms(start_time),
                errors=[{"error": str(e)}],
            )

        eligible = [r for r in candidates if self.should_process_notification(r, now)]
        skipped = len(candidates) - len(eligible)

        if not eligible:
            self._logger.debug(f"[{self.worker_name}] No notifications due")
            return WorkerResult.from_counts(
                0, 0, skipped=skipped, duration_ms=self._elapsed_ms(start_time)
            )

        self._logger.info(
            f"[{self.worker_name}] Found {len(eligible)} notifications to process",
            extra={"skipped": skipped},
        )

        def record_failure(record: NotificationRecord, error: Exception) -> None:
            errors.append({"item_id": str(record.id), "error": str(error)[:500]})
            self._logger.error(
                f"[{self.worker_name}] Failed to process notification {record.id}",
                extra={"notification_id": str(record.id), "error": str(error)},
                exc_info=True,
            )

        # Render everything first so render errors never reach the provider
        groups: dict[DeliveryTarget, list[tuple[NotificationRecord, str]]] = {}
        for record in eligible:
            try:
                content = await self._render(record)
            except RenderError as e:
                try:
                    await self._persist_render_failure(record, e)
                except Exception as persist_error:
                    record_failure(record, persist_error)
                failed += 1
                continue
            except Exception as e:
                record_failure(record, e)
                failed += 1
                continue

            target = DeliveryTarget(channel=record.channel, recipient=record.recipient)
            groups.setdefault(target, []).append((record, content))

        for target, entries in groups.items():
            items = [
                DispatchItem(
                    dispatch_id=str(record.id),
                    content=content,
                    payload=self._payload(record),
                )
                for record, content in entries
            ]
            try:
                outcomes = await self.batcher.dispatch_batch(target, items)
            except Exception as e:
                for record, _ in entries:
                    record_failure(record, e)
                failed += len(entries)
                continue

            for (record, _), outcome in zip(entries, outcomes):
                try:
                    status = await self._apply_outcome(
                        record, outcome.result, outcome.error
                    )
                except Exception as e:
                    record_failure(record, e)
                    failed += 1
                    continue

                if status == NotificationStatus.SENT:
                    processed += 1
                else:
                    failed += 1

        result = WorkerResult.from_counts(
            processed,
            failed,
            skipped=skipped,
            duration_ms=self._elapsed_ms(start_time),
            errors=errors,
        )
        self._logger.info(
            f"[{self.worker_name}] Cycle complete",
            extra=result.to_dict(),
        )
        return result

    # -------------------------------------------------------------------------
    # Single notification
    # -------------------------------------------------------------------------

    async def process_notification(
        self, record: NotificationRecord
    ) -> NotificationStatus:
        """Render, deliver, classify and persist one notification now.

        Terminal records are left untouched. The schedule gate is not
        applied, so this also serves immediate sends.

        Returns:
            The record's status afterwards
        """
        current = await self.store.get(record.id)
        if current is None:
            raise StoreError(f"Notification {record.id} not found")

        if current.status.is_terminal:
            self._logger.debug(
                f"[{self.worker_name}] Notification {current.id} already {current.status.value}",
                extra={"notification_id": str(current.id)},
            )
            return current.status

        try:
            content = await self._render(current)
        except RenderError as e:
            await self._persist_render_failure(current, e)
            return NotificationStatus.ERROR

        target = DeliveryTarget(channel=current.channel, recipient=current.recipient)
        result: DeliveryResult | None = None
        error: Exception | None = None
        try:
            result = await self.batcher.dispatch(
                target, content, str(current.id), self._payload(current)
            )
        except Exception as e:
            error = e

        return await self._apply_outcome(current, result, error)

    async def _render(self, record: NotificationRecord) -> str:
        try:
            record.typed_data()
        except ValidationError as e:
            raise RenderError(
                record.template, f"data does not match kind {record.kind.value}"
            ) from e
        return await self.renderer.render(record.template, record.template_data())

    def _payload(self, record: NotificationRecord) -> dict[str, Any]:
        return {
            "notification_id": str(record.id),
            "kind": record.kind.value,
            "server_id": record.server_id,
        }

    # -------------------------------------------------------------------------
    # Outcome classification
    # -------------------------------------------------------------------------

    async def _persist_render_failure(
        self, record: NotificationRecord, error: RenderError
    ) -> None:
        await self.store.update_status(
            record.id,
            NotificationStatus.ERROR,
            RENDER_FAILED_MESSAGE,
            attempted_at=self._clock(),
        )
        self._logger.error(
            f"[{self.worker_name}] {RENDER_FAILED_MESSAGE} for notification {record.id}",
            extra={
                "notification_id": str(record.id),
                "template": error.template_id,
                "error": str(error),
            },
        )

    async def _apply_outcome(
        self,
        record: NotificationRecord,
        result: DeliveryResult | None,
        error: Exception | None,
    ) -> NotificationStatus:
        attempted_at = self._clock()

        if error is None and result is not None:
            await self.store.mark_delivered(record.id, result.to_record(), attempted_at)
            self._logger.info(
                f"[{self.worker_name}] Delivered notification {record.id}",
                extra={
                    "notification_id": str(record.id),
                    "channel": record.channel.value,
                    "message_id": result.message_id,
                },
            )
            await self._schedule_next_occurrence(record, attempted_at)
            return NotificationStatus.SENT

        if isinstance(error, RenderError):
            await self._persist_render_failure(record, error)
            return NotificationStatus.ERROR

        if isinstance(error, DeliveryError) and error.permanent:
            message = str(error) or "Permanent delivery failure"
            await self.store.update_status(
                record.id,
                NotificationStatus.PERMANENTLY_FAILED,
                message,
                attempted_at=attempted_at,
            )
            self._logger.warning(
                f"[{self.worker_name}] Notification {record.id} failed permanently",
                extra={
                    "notification_id": str(record.id),
                    "code": error.code,
                    "error": message,
                },
            )
            return NotificationStatus.PERMANENTLY_FAILED

        # Transient
        if record.retry_count >= self.max_retries:
            return await self._exhaust(record, record.retry_count, attempted_at, error)

        retry_count = await self.store.increment_retry_count(record.id)
        if retry_count >= self.max_retries:
            return await self._exhaust(record, retry_count, attempted_at, error)

        await self.store.update_status(
            record.id,
            NotificationStatus.FAILED,
            TRANSIENT_FAILURE_MESSAGE,
            attempted_at=attempted_at,
        )
        self._logger.warning(
            f"[{self.worker_name}] Notification {record.id} will be retried",
            extra={
                "notification_id": str(record.id),
                "retry_count": retry_count,
                "retry_after": str(self.backoff_delay(retry_count)),
                "error": str(error),
            },
        )
        return NotificationStatus.FAILED

    async def _exhaust(
        self,
        record: NotificationRecord,
        retry_count: int,
        attempted_at: datetime,
        error: Exception | None,
    ) -> NotificationStatus:
        await self.store.update_status(
            record.id,
            NotificationStatus.PERMANENTLY_FAILED,
            MAX_RETRIES_MESSAGE,
            attempted_at=attempted_at,
        )
        self._logger.error(
            f"[{self.worker_name}] {MAX_RETRIES_MESSAGE} for notification {record.id}",
            extra={
                "notification_id": str(record.id),
                "retry_count": retry_count,
                "error": str(error),
            },
        )
        return NotificationStatus.PERMANENTLY_FAILED

    # -------------------------------------------------------------------------
    # Recurrence and retention
    # -------------------------------------------------------------------------

    async def _schedule_next_occurrence(
        self, record: NotificationRecord, now: datetime
    ) -> NotificationRecord | None:
        """Create the next PENDING record for an active recurring notification."""
        if not record.is_recurrence_active(now):
            return None

        # Missed occurrences are skipped, as for reminder schedules
        try:
            next_time = next_occurrence(
                record.scheduled_for, record.recurrence_pattern, self.timezone
            )
            while next_time <= now:
                next_time = next_occurrence(
                    next_time, record.recurrence_pattern, self.timezone
                )
        except ScheduleComputationError as e:
            self._logger.error(
                f"[{self.worker_name}] Cannot schedule next occurrence of {record.id}",
                extra={"notification_id": str(record.id), "error": str(e)},
            )
            return None

        end_date = ensure_utc(record.recurrence_end_date)
        if end_date is not None and next_time > end_date:
            self._logger.info(
                f"[{self.worker_name}] Recurrence of {record.id} ended",
                extra={"notification_id": str(record.id)},
            )
            return None

        follow_up = NotificationRecord(
            kind=record.kind,
            template=record.template,
            data=dict(record.data),
            channel=record.channel,
            recipient=record.recipient,
            server_id=record.server_id,
            scheduled_for=next_time,
            is_recurring=True,
            recurrence_pattern=record.recurrence_pattern,
            recurrence_end_date=end_date,
            previous_id=record.id,
        )
        try:
            created = await self.store.create(follow_up)
        except StoreError as e:
            self._logger.error(
                f"[{self.worker_name}] Could not create next occurrence of {record.id}",
                extra={"notification_id": str(record.id), "error": str(e)},
                exc_info=True,
            )
            return None

        self._logger.info(
            f"[{self.worker_name}] Scheduled next occurrence {created.id}",
            extra={
                "notification_id": str(created.id),
                "previous_id": str(record.id),
                "scheduled_for": next_time.isoformat(),
            },
        )
        return created

    async def cleanup_old_notifications(self, retention_days: int = RETENTION_DAYS) -> int:
        """Delete terminal notifications older than the retention window."""
        cutoff = self._clock() - timedelta(days=retention_days)
        deleted = await self.store.cleanup_before(cutoff)
        self._logger.info(
            f"[{self.worker_name}] Cleaned up {deleted} notifications",
            extra={"cutoff": cutoff.isoformat(), "retention_days": retention_days},
        )
        return deleted
