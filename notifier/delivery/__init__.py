"""Delivery providers for notification channels."""

from notifier.delivery.base import ChannelRouter, DeliveryProvider
from notifier.delivery.providers import DiscordWebhookProvider, LoggingProvider

__all__ = [
    "ChannelRouter",
    "DeliveryProvider",
    "DiscordWebhookProvider",
    "LoggingProvider",
]
