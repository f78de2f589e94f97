"""Notification intake.

Consumes the typed event channels feeding the pipeline:

- NotificationRequest -> a PENDING NotificationRecord
- ReminderDue -> NotificationRequest via the configured reminder factory

Each event is handled on its own; one bad event never blocks the rest.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from notifier.events.channel import EventChannel
from notifier.events.types import NotificationRequest, ReminderDue
from notifier.models import NotificationRecord, utcnow
from notifier.stores.base import NotificationStore
from notifier.workers.base import Worker, WorkerResult

logger = logging.getLogger(__name__)

ReminderFactory = Callable[[ReminderDue], Awaitable[NotificationRequest | None]]


class NotificationIntake(Worker):
    """Turns channel events into notification records."""

    def __init__(
        self,
        store: NotificationStore,
        requests: EventChannel[NotificationRequest],
        reminders: EventChannel[ReminderDue],
        reminder_factory: ReminderFactory | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__()
        self.store = store
        self.requests = requests
        self.reminders = reminders
        self.reminder_factory = reminder_factory
        self._clock = clock

    @property
    def worker_name(self) -> str:
        return "NotificationIntake"

    async def submit(self, request: NotificationRequest) -> None:
        """Queue a request for the next intake cycle."""
        await self.requests.publish(request)

    async def handle_request(self, request: NotificationRequest) -> NotificationRecord:
        record = await self.store.create(request.to_record(self._clock()))
        self._logger.info(
            f"[{self.worker_name}] Created notification {record.id}",
            extra={
                "notification_id": str(record.id),
                "kind": record.kind.value,
                "channel": record.channel.value,
                "scheduled_for": record.scheduled_for.isoformat(),
            },
        )
        return record

    async def handle_reminder_due(self, event: ReminderDue) -> NotificationRecord | None:
        """Create the notification for a due reminder, if the factory yields one."""
        if self.reminder_factory is None:
            self._logger.warning(
                f"[{self.worker_name}] No reminder factory configured, dropping due signal",
                extra={"task_id": event.task_id, "schedule_id": str(event.schedule_id)},
            )
            return None

        request = await self.reminder_factory(event)
        if request is None:
            self._logger.debug(
                f"[{self.worker_name}] Reminder factory skipped task {event.task_id}",
                extra={"schedule_id": str(event.schedule_id)},
            )
            return None
        return await self.handle_request(request)

    async def run(self) -> WorkerResult:
        """Drain both channels and handle every queued event."""
        start_time = utcnow()
        processed = 0
        failed = 0
        skipped = 0
        errors: list[dict[str, Any]] = []

        events: list[NotificationRequest | ReminderDue] = [
            *self.reminders.drain(),
            *self.requests.drain(),
        ]
        if not events:
            return WorkerResult.from_counts(0, 0, duration_ms=self._elapsed_ms(start_time))

        for event in events:
            try:
                if isinstance(event, ReminderDue):
                    record = await self.handle_reminder_due(event)
                else:
                    record = await self.handle_request(event)
            except Exception as e:
                failed += 1
                errors.append({"event_type": event.event_type.value, "error": str(e)[:500]})
                self._logger.error(
                    f"[{self.worker_name}] Failed to handle {event.event_type.value}",
                    extra={"event_type": event.event_type.value, "error": str(e)},
                    exc_info=True,
                )
                continue

            if record is None:
                skipped += 1
            else:
                processed += 1

        result = WorkerResult.from_counts(
            processed,
            failed,
            skipped=skipped,
            duration_ms=self._elapsed_ms(start_time),
            errors=errors,
        )
        self._logger.info(f"[{self.worker_name}] Cycle complete", extra=result.to_dict())
        return result
