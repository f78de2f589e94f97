"""Tests for event channels and notification intake."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from conftest import NOW
from notifier.events import (
    ChannelClosedError,
    EventChannel,
    EventType,
    NotificationRequest,
    ReminderDue,
)
from notifier.models import NotificationChannel, NotificationKind, NotificationStatus
from notifier.workers import NotificationIntake, WorkerStatus


def make_request(**overrides) -> NotificationRequest:
    fields = {
        "kind": NotificationKind.SYSTEM_ALERT,
        "template": "system-alert",
        "data": {"message": "Maintenance at 22:00"},
        "channel": NotificationChannel.EMAIL,
        "recipient": "ops@example.com",
        "server_id": "guild-1",
    }
    fields.update(overrides)
    return NotificationRequest(**fields)


def make_due(task_id: str = "task-1") -> ReminderDue:
    return ReminderDue(task_id=task_id, schedule_id=uuid4(), server_id="guild-1")


# ============================================================================
# EventChannel Tests
# ============================================================================

class TestEventChannel:
    """Tests for the bounded typed channel."""

    async def test_publish_and_drain_in_order(self):
        channel: EventChannel[int] = EventChannel("numbers")

        await channel.publish(1)
        channel.publish_nowait(2)

        assert channel.qsize() == 2
        assert channel.drain() == [1, 2]
        assert channel.drain() == []

    async def test_get_returns_next_event(self):
        channel: EventChannel[str] = EventChannel("words")
        channel.publish_nowait("first")

        assert await channel.get() == "first"

    def test_full_channel_rejects_nowait(self):
        channel: EventChannel[int] = EventChannel("tiny", maxsize=1)
        channel.publish_nowait(1)

        with pytest.raises(asyncio.QueueFull):
            channel.publish_nowait(2)

    async def test_closed_channel_rejects_publish(self):
        channel: EventChannel[int] = EventChannel("closing")
        channel.publish_nowait(1)
        channel.close()

        assert channel.closed is True
        with pytest.raises(ChannelClosedError):
            await channel.publish(2)
        with pytest.raises(ChannelClosedError):
            channel.publish_nowait(2)
        # Queued events are still readable after close
        assert channel.drain() == [1]


# ============================================================================
# Event Type Tests
# ============================================================================

class TestNotificationRequest:
    """Tests for request to record conversion."""

    def test_defaults_to_immediate_pending_record(self):
        record = make_request().to_record(NOW)

        assert record.status == NotificationStatus.PENDING
        assert record.scheduled_for == NOW
        assert record.retry_count == 0
        assert record.is_recurring is False

    def test_recurrence_fields_carry_over(self):
        end = NOW + timedelta(days=30)
        record = make_request(
            scheduled_for=NOW + timedelta(hours=1),
            recurrence_pattern="weekly",
            recurrence_end_date=end,
        ).to_record(NOW)

        assert record.scheduled_for == NOW + timedelta(hours=1)
        assert record.is_recurring is True
        assert record.recurrence_pattern == "weekly"
        assert record.recurrence_end_date == end

    def test_event_types_are_versioned(self):
        assert make_request().event_type == EventType.NOTIFICATION_REQUESTED
        assert make_due().event_type.value == "reminder.due.v1"


# ============================================================================
# NotificationIntake Tests
# ============================================================================

class TestNotificationIntake:
    """Tests for turning channel events into records."""

    async def test_empty_channels_is_no_work(self, intake):
        result = await intake.run()

        assert result.status == WorkerStatus.NO_WORK

    async def test_requests_become_pending_records(self, intake, notification_store):
        await intake.submit(make_request())
        await intake.submit(make_request(recipient="dev@example.com"))

        result = await intake.run()
        due = await notification_store.find_pending_due(NOW)

        assert result.status == WorkerStatus.SUCCESS
        assert result.processed_count == 2
        assert sorted(r.recipient for r in due) == ["dev@example.com", "ops@example.com"]

    async def test_reminder_due_uses_factory(self, intake, notification_store):
        seen = []

        async def factory(event: ReminderDue) -> NotificationRequest:
            seen.append(event.task_id)
            return make_request(
                kind=NotificationKind.TASK_REMINDER,
                template="task-reminder",
                data={"task": {"title": event.task_id, "deadline": "-", "status": "open"}},
            )

        intake.reminder_factory = factory
        intake.reminders.publish_nowait(make_due("task-9"))

        result = await intake.run()
        due = await notification_store.find_pending_due(NOW)

        assert result.processed_count == 1
        assert seen == ["task-9"]
        assert due[0].kind == NotificationKind.TASK_REMINDER

    async def test_factory_returning_none_is_skipped(self, intake):
        async def factory(event: ReminderDue) -> None:
            return None

        intake.reminder_factory = factory
        intake.reminders.publish_nowait(make_due())

        result = await intake.run()

        assert result.skipped_count == 1
        assert result.processed_count == 0

    async def test_missing_factory_drops_due_signal(self, intake, caplog):
        intake.reminders.publish_nowait(make_due())

        result = await intake.run()

        assert result.skipped_count == 1
        assert "No reminder factory configured" in caplog.text

    async def test_one_bad_event_does_not_block_the_rest(self, intake, notification_store):
        async def factory(event: ReminderDue) -> NotificationRequest:
            raise RuntimeError("task lookup failed")

        intake.reminder_factory = factory
        intake.reminders.publish_nowait(make_due())
        await intake.submit(make_request())

        result = await intake.run()

        assert result.status == WorkerStatus.PARTIAL
        assert result.failed_count == 1
        assert result.processed_count == 1
        assert result.errors[0]["event_type"] == "reminder.due.v1"
        assert len(await notification_store.find_pending_due(NOW)) == 1


@pytest.fixture
def intake(notification_store, clock):
    return NotificationIntake(
        notification_store,
        EventChannel("notification-requests"),
        EventChannel("reminder-due"),
        clock=clock,
    )
