"""Tests for the worker runner, composition root and settings."""

import logging
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import NOW, make_record
from notifier.config import Settings
from notifier.events import EventChannel, NotificationRequest, ReminderDue
from notifier.models import (
    NotificationChannel,
    NotificationFilter,
    NotificationKind,
    NotificationStatus,
)
from notifier.services.templates import PlaceholderTemplateRenderer
from notifier.stores import CachedNotificationStore, SqlNotificationStore
from notifier.workers import (
    DispatchBatcher,
    NotificationDispatcher,
    NotificationIntake,
    ReminderScheduler,
    WorkerRunner,
    WorkerStatus,
    build_runner,
    configure_worker_logging,
)

WEBHOOK = "https://discord.com/api/webhooks/1/abc"


async def reminder_factory(event: ReminderDue) -> NotificationRequest:
    return NotificationRequest(
        kind=NotificationKind.TASK_REMINDER,
        template="task-reminder",
        data={"task": {"title": event.task_id, "deadline": "2026-03-03", "status": "open"}},
        channel=NotificationChannel.CHAT,
        recipient=WEBHOOK,
        server_id=event.server_id,
    )


# ============================================================================
# WorkerRunner Tests
# ============================================================================

class TestRunOnce:
    """Tests for a single pipeline cycle."""

    async def test_reminder_flows_through_to_delivery(
        self, runner, notification_store, provider
    ):
        """A due reminder becomes a record and is delivered in one cycle."""
        await runner.scheduler.schedule_reminder(
            "Ship release", "guild-1", NOW - timedelta(seconds=1)
        )

        result = await runner.run_once()
        sent = await notification_store.find_by_filters(
            NotificationFilter(statuses=[NotificationStatus.SENT])
        )

        assert result.errors == []
        assert result.workers_run == 4
        assert list(result.worker_results) == [
            "ReminderScheduler",
            "NotificationIntake",
            "NotificationDispatcher",
            "RetentionCleanup",
        ]
        assert len(provider.requests) == 1
        assert 'Reminder for task "Ship release"' in provider.requests[0].content
        assert len(sent) == 1
        assert await runner.scheduler.store.list_by_task("Ship release") == []

    async def test_worker_failure_is_isolated(self, runner):
        runner.scheduler.run = AsyncMock(side_effect=RuntimeError("boom"))

        result = await runner.run_once()

        assert result.errors == ["ReminderScheduler failed: boom"]
        assert result.workers_run == 3
        assert "NotificationDispatcher" in result.worker_results

    async def test_result_serializes_for_logging(self, runner):
        result = await runner.run_once()
        data = result.to_dict()

        assert data["workers_run"] == 4
        assert data["worker_results"]["NotificationDispatcher"]["status"] == "no_work"
        assert data["duration_ms"] is not None


class TestRunnerLifecycle:
    """Tests for start/stop and the interval loops."""

    async def test_start_and_stop_manage_provider_and_channels(self, runner, provider):
        await runner.start()
        assert provider.initialized is True

        await runner.stop()

        assert provider.cleaned_up is True
        assert runner.intake.requests.closed is True
        assert runner.intake.reminders.closed is True

    async def test_loop_runs_each_component(self, runner):
        iterations = await runner.run_loop(interval_seconds=0.01, max_iterations=1)

        assert iterations == {
            "ReminderScheduler": 1,
            "NotificationIntake": 1,
            "NotificationDispatcher": 1,
            "RetentionCleanup": 1,
        }

    async def test_shutdown_requested_before_loop(self, runner):
        runner.request_shutdown()

        iterations = await runner.run_loop(max_iterations=5)

        assert set(iterations.values()) == {0}

    async def test_loop_survives_failing_cycle(self, runner):
        runner.dispatcher.run = AsyncMock(side_effect=RuntimeError("db down"))

        iterations = await runner.run_loop(interval_seconds=0.01, max_iterations=2)

        assert iterations["NotificationDispatcher"] == 2
        assert runner.dispatcher.run.await_count == 2

    async def test_cleanup_reports_deleted_records(self, runner, notification_store):
        await notification_store.create(
            make_record(status=NotificationStatus.SENT, created_at=NOW - timedelta(days=31))
        )

        result = await runner.cleanup()

        assert result.status == WorkerStatus.SUCCESS
        assert result.processed_count == 1


# ============================================================================
# Composition Root Tests
# ============================================================================

class TestBuildRunner:
    """Tests for wiring components from settings."""

    @pytest.mark.parametrize("backend, cached", [("none", False), ("memory", True)])
    async def test_builds_against_sqlite(self, settings, provider, backend, cached):
        settings.CACHE_BACKEND = backend

        runner = build_runner(settings, reminder_factory=reminder_factory, provider=provider)
        await runner.start()
        try:
            result = await runner.run_once()
        finally:
            await runner.stop()

        assert isinstance(runner.dispatcher.store, CachedNotificationStore) is cached
        if not cached:
            assert isinstance(runner.dispatcher.store, SqlNotificationStore)
        assert runner.dispatcher.backoff[0] == timedelta(minutes=5)
        assert runner.intake.reminder_factory is reminder_factory
        assert result.errors == []

    def test_invalid_settings_rejected(self, settings):
        settings.CACHE_BACKEND = "memcached"

        with pytest.raises(ValueError):
            build_runner(settings)


class TestSettings:
    """Tests for settings validation."""

    def test_defaults_are_valid(self, settings):
        settings.validate()

    @pytest.mark.parametrize(
        "name, value",
        [
            ("DATABASE_URL", ""),
            ("NOTIFY_MAX_RETRIES", -1),
            ("NOTIFY_BACKOFF_MINUTES", []),
            ("DISPATCH_BATCH_SIZE", 0),
            ("DISPATCH_MAX_RETRIES", -1),
        ],
    )
    def test_invalid_values(self, settings, name, value):
        setattr(settings, name, value)

        with pytest.raises(ValueError):
            settings.validate()

    def test_backoff_list_from_environment(self, monkeypatch):
        monkeypatch.setenv("NOTIFY_BACKOFF_MINUTES", "1, 2,4")

        assert Settings().NOTIFY_BACKOFF_MINUTES == [1.0, 2.0, 4.0]


def test_configure_worker_logging():
    configure_worker_logging(logging.DEBUG)

    assert logging.getLogger("notifier").level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


@pytest.fixture
def runner(notification_store, schedule_store, provider, clock, sleep):
    """Runner over in-memory stores with a controllable clock."""
    batcher = DispatchBatcher(provider, sleep=sleep, clock=clock)
    dispatcher = NotificationDispatcher(
        notification_store, PlaceholderTemplateRenderer(), batcher, clock=clock
    )
    due_channel: EventChannel[ReminderDue] = EventChannel("reminder-due")
    scheduler = ReminderScheduler(schedule_store, due_channel, clock=clock, tick_interval=0.01)
    intake = NotificationIntake(
        notification_store,
        EventChannel("notification-requests"),
        due_channel,
        reminder_factory=reminder_factory,
        clock=clock,
    )
    return WorkerRunner(
        dispatcher,
        scheduler,
        intake,
        provider=provider,
        intake_interval=0.01,
        cleanup_interval=0.01,
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    settings = Settings()
    settings.DATABASE_URL = f"sqlite+aiosqlite:///{tmp_path / 'notifier.db'}"
    settings.NOTIFY_MAX_RETRIES = 5
    settings.NOTIFY_BACKOFF_MINUTES = [5, 15, 30, 60, 120]
    settings.DISPATCH_BATCH_SIZE = 5
    settings.DISPATCH_MAX_RETRIES = 3
    settings.CACHE_BACKEND = "memory"
    settings.SCHEDULER_TIMEZONE = "UTC"
    return settings
