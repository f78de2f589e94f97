"""Reminder scheduler.

Owns ReminderSchedule entries and turns them into ReminderDue signals on
a fixed tick. ONCE schedules are deleted after firing; DAILY and WEEKLY
schedules move to their next fire time and persist until cancelled.

The scheduler never creates notification records itself. Due signals go
out on an EventChannel for NotificationIntake to consume.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone, tzinfo
from typing import Any

from notifier.errors import ReminderSchedulerError
from notifier.events.channel import EventChannel
from notifier.events.types import ReminderDue
from notifier.models import ReminderFrequency, ReminderSchedule, ensure_utc, utcnow
from notifier.services.recurrence import next_reminder_time
from notifier.stores.base import ReminderScheduleStore
from notifier.workers.base import Worker, WorkerResult

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = 60.0


class ReminderScheduler(Worker):
    """Creates, cancels and fires reminder schedules."""

    def __init__(
        self,
        store: ReminderScheduleStore,
        due_channel: EventChannel[ReminderDue],
        clock: Callable[[], datetime] = utcnow,
        tick_interval: float = CHECK_INTERVAL_SECONDS,
        timezone: tzinfo = timezone.utc,
    ) -> None:
        super().__init__()
        self.store = store
        self.due_channel = due_channel
        self.tick_interval = tick_interval
        self.timezone = timezone
        self._clock = clock

    @property
    def worker_name(self) -> str:
        return "ReminderScheduler"

    async def run(self) -> WorkerResult:
        return await self.check_reminders()

    async def schedule_reminder(
        self,
        task_id: str,
        server_id: str,
        scheduled_for: datetime,
        frequency: ReminderFrequency | str = ReminderFrequency.ONCE,
    ) -> ReminderSchedule:
        """Create a schedule entry.

        Repeated calls for one task create separate schedules.

        Raises:
            ReminderSchedulerError: Invalid frequency or store failure
        """
        try:
            frequency = ReminderFrequency(frequency)
            schedule = await self.store.create_schedule(
                task_id=task_id,
                server_id=server_id,
                frequency=frequency,
                scheduled_for=ensure_utc(scheduled_for),
            )
        except Exception as e:
            logger.error(
                "Failed to schedule reminder",
                extra={"task_id": task_id, "server_id": server_id, "error": str(e)},
            )
            raise ReminderSchedulerError(f"Failed to schedule reminder: {e}") from e

        logger.info(
            f"Scheduled {frequency.value} reminder for task {task_id}",
            extra={
                "schedule_id": str(schedule.id),
                "task_id": task_id,
                "scheduled_for": schedule.scheduled_for.isoformat(),
            },
        )
        return schedule

    async def cancel_reminder(self, task_id: str) -> int:
        """Delete every schedule for a task.

        A due signal already emitted for the task may still be delivered.

        Raises:
            ReminderSchedulerError: Store failure
        """
        try:
            deleted = await self.store.delete_by_task(task_id)
        except Exception as e:
            logger.error(
                "Failed to cancel reminder",
                extra={"task_id": task_id, "error": str(e)},
            )
            raise ReminderSchedulerError(f"Failed to cancel reminder: {e}") from e

        logger.info(
            f"Cancelled {deleted} reminders for task {task_id}",
            extra={"task_id": task_id},
        )
        return deleted

    def next_fire_time(self, schedule: ReminderSchedule, now: datetime) -> datetime:
        """First occurrence after ``now``, stepping from the schedule's own time.

        Missed occurrences are skipped so a stalled scheduler does not fire
        a backlog; time of day in the scheduler's zone is preserved.

        Raises:
            ScheduleComputationError: ONCE or unknown frequency
        """
        next_time = next_reminder_time(
            schedule.scheduled_for, schedule.frequency, self.timezone
        )
        while next_time <= now:
            next_time = next_reminder_time(next_time, schedule.frequency, self.timezone)
        return next_time

    async def check_reminders(self) -> WorkerResult:
        """Run one scheduler tick."""
        start_time = utcnow()
        now = self._clock()
        processed = 0
        failed = 0
        errors: list[dict[str, Any]] = []

        try:
            due = await self.store.get_due(now)
        except Exception as e:
            self._logger.error(
                f"[{self.worker_name}] Could not load due schedules",
                extra={"error": str(e)},
                exc_info=True,
            )
            return WorkerResult.from_counts(
                0, 0, duration_ms=self._elapsed_ms(start_time), errors=[{"error": str(e)}]
            )

        if not due:
            self._logger.debug(f"[{self.worker_name}] No reminders due")
            return WorkerResult.from_counts(0, 0, duration_ms=self._elapsed_ms(start_time))

        for schedule in due:
            try:
                await self._fire(schedule, now)
                processed += 1
            except Exception as e:
                failed += 1
                errors.append({"item_id": str(schedule.id), "error": str(e)[:500]})
                self._logger.error(
                    f"[{self.worker_name}] Failed to process schedule {schedule.id}",
                    extra={
                        "schedule_id": str(schedule.id),
                        "task_id": schedule.task_id,
                        "frequency": str(schedule.frequency),
                        "error": str(e),
                    },
                    exc_info=True,
                )

        result = WorkerResult.from_counts(
            processed, failed, duration_ms=self._elapsed_ms(start_time), errors=errors
        )
        self._logger.info(f"[{self.worker_name}] Cycle complete", extra=result.to_dict())
        return result

    async def _fire(self, schedule: ReminderSchedule, now: datetime) -> None:
        # Compute before emitting so a bad entry never fires
        next_time = None
        if schedule.frequency != ReminderFrequency.ONCE:
            next_time = self.next_fire_time(schedule, now)

        event = ReminderDue(
            task_id=schedule.task_id,
            schedule_id=schedule.id,
            server_id=schedule.server_id,
            timestamp=now,
        )
        try:
            self.due_channel.publish_nowait(event)
        except asyncio.QueueFull as e:
            # Left in place; fires again next tick
            raise ReminderSchedulerError(
                f"Due channel {self.due_channel.name} is full"
            ) from e

        if next_time is None:
            await self.store.delete(schedule.id)
        else:
            await self.store.update_next(schedule.id, next_time)

        self._logger.info(
            f"[{self.worker_name}] Reminder due for task {schedule.task_id}",
            extra={
                "schedule_id": str(schedule.id),
                "server_id": schedule.server_id,
                "next_fire": next_time.isoformat() if next_time else None,
            },
        )
