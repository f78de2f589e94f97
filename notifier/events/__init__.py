"""Typed event channels feeding the notification pipeline."""

from notifier.events.channel import ChannelClosedError, EventChannel
from notifier.events.types import EventType, NotificationRequest, ReminderDue

__all__ = [
    "ChannelClosedError",
    "EventChannel",
    "EventType",
    "NotificationRequest",
    "ReminderDue",
]
