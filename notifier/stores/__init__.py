"""Record stores for notifications and reminder schedules."""

from notifier.stores.base import NotificationStore, ReminderScheduleStore
from notifier.stores.cached import CachedNotificationStore
from notifier.stores.memory import InMemoryNotificationStore, InMemoryReminderScheduleStore
from notifier.stores.sql import SqlNotificationStore, SqlReminderScheduleStore

__all__ = [
    "NotificationStore",
    "ReminderScheduleStore",
    "CachedNotificationStore",
    "InMemoryNotificationStore",
    "InMemoryReminderScheduleStore",
    "SqlNotificationStore",
    "SqlReminderScheduleStore",
]
