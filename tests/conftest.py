"""Shared fixtures for the notification pipeline tests."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from sqlalchemy.pool import StaticPool

from notifier.db.session import create_engine, create_session_factory, init_db
from notifier.delivery.base import DeliveryProvider
from notifier.models import (
    DeliveryRequest,
    DeliveryResult,
    NotificationChannel,
    NotificationKind,
    NotificationRecord,
)
from notifier.stores import (
    InMemoryNotificationStore,
    InMemoryReminderScheduleStore,
    SqlNotificationStore,
    SqlReminderScheduleStore,
)

NOW = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self, log: list[tuple[str, Any]] | None = None) -> None:
        self.delays: list[float] = []
        self.log = log if log is not None else []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.log.append(("sleep", delay))


class FakeProvider(DeliveryProvider):
    """Provider whose behaviour is scripted per test.

    ``behaviour`` receives each request and either returns a
    DeliveryResult or raises. By default every send succeeds.
    """

    def __init__(self, log: list[tuple[str, Any]] | None = None) -> None:
        self.requests: list[DeliveryRequest] = []
        self.log = log if log is not None else []
        self.behaviour: Callable[[DeliveryRequest], DeliveryResult] | None = None
        self.initialized = False
        self.cleaned_up = False

    async def send(self, request: DeliveryRequest) -> DeliveryResult:
        self.requests.append(request)
        self.log.append(("send", request.content))
        if self.behaviour is not None:
            return self.behaviour(request)
        return DeliveryResult(
            success=True, message_id=f"m{len(self.requests)}", provider="fake"
        )

    async def initialize(self) -> None:
        self.initialized = True

    async def cleanup(self) -> None:
        self.cleaned_up = True


def make_record(**overrides: Any) -> NotificationRecord:
    """A due task-reminder notification for the chat channel."""
    fields: dict[str, Any] = {
        "kind": NotificationKind.TASK_REMINDER,
        "template": "task-reminder",
        "data": {
            "task": {
                "title": "Ship release",
                "deadline": "2026-03-03",
                "status": "in_progress",
            }
        },
        "channel": NotificationChannel.CHAT,
        "recipient": "https://discord.com/api/webhooks/1/abc",
        "server_id": "guild-1",
        "scheduled_for": NOW - timedelta(seconds=1),
        "created_at": NOW - timedelta(minutes=1),
    }
    fields.update(overrides)
    return NotificationRecord(**fields)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def event_log() -> list[tuple[str, Any]]:
    return []


@pytest.fixture
def sleep(event_log) -> RecordingSleep:
    return RecordingSleep(event_log)


@pytest.fixture
def provider(event_log) -> FakeProvider:
    return FakeProvider(event_log)


@pytest.fixture
def notification_store() -> InMemoryNotificationStore:
    return InMemoryNotificationStore()


@pytest.fixture
def schedule_store() -> InMemoryReminderScheduleStore:
    return InMemoryReminderScheduleStore()


@pytest.fixture
async def session_factory():
    """Async sessions on an in-memory sqlite database."""
    engine = create_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def sql_notification_store(session_factory) -> SqlNotificationStore:
    return SqlNotificationStore(session_factory)


@pytest.fixture
def sql_schedule_store(session_factory) -> SqlReminderScheduleStore:
    return SqlReminderScheduleStore(session_factory)
