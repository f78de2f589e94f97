"""Database models and schemas for the notification pipeline."""

from notifier.models.delivery import DeliveryFailure, DeliveryRequest, DeliveryResult
from notifier.models.notification import (
    TERMINAL_STATUSES,
    NotificationChannel,
    NotificationData,
    NotificationFilter,
    NotificationKind,
    NotificationRecord,
    NotificationStatus,
    ServerNotificationData,
    SystemNotificationData,
    TaskNotificationData,
    UserNotificationData,
    ensure_utc,
    parse_notification_data,
    utcnow,
)
from notifier.models.reminder import ReminderFrequency, ReminderSchedule

__all__ = [
    "DeliveryFailure",
    "DeliveryRequest",
    "DeliveryResult",
    "TERMINAL_STATUSES",
    "NotificationChannel",
    "NotificationData",
    "NotificationFilter",
    "NotificationKind",
    "NotificationRecord",
    "NotificationStatus",
    "ServerNotificationData",
    "SystemNotificationData",
    "TaskNotificationData",
    "UserNotificationData",
    "ensure_utc",
    "parse_notification_data",
    "utcnow",
    "ReminderFrequency",
    "ReminderSchedule",
]
