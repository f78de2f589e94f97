"""
Delivery provider abstraction.

A provider delivers one rendered payload on one channel. Failures are
reported either as a DeliveryResult with ``success=False`` and a typed
error, or by raising DeliveryError; both carry the permanent/transient
distinction the dispatcher needs.
"""

import abc
import logging

from notifier.errors import DeliveryError
from notifier.models import DeliveryRequest, DeliveryResult, NotificationChannel

logger = logging.getLogger(__name__)


class DeliveryProvider(abc.ABC):
    """Abstract base class for delivery providers."""

    @abc.abstractmethod
    async def send(self, request: DeliveryRequest) -> DeliveryResult:
        """
        Deliver a rendered notification.

        Args:
            request: Channel, recipient, content and metadata

        Returns:
            DeliveryResult with success flag, message id or typed error
        """
        pass

    def validate_recipient(self, recipient: str) -> bool:
        """Check the recipient format; invalid recipients fail permanently."""
        return bool(recipient)

    async def initialize(self) -> None:
        """Initialize the provider (e.g., establish connections)."""
        logger.info(f"{self.__class__.__name__} initialized")

    async def cleanup(self) -> None:
        """Clean up resources (e.g., close connections)."""
        logger.info(f"{self.__class__.__name__} cleaned up")


class ChannelRouter(DeliveryProvider):
    """Routes each request to the provider registered for its channel."""

    def __init__(
        self, providers: dict[NotificationChannel, DeliveryProvider] | None = None
    ) -> None:
        self._providers: dict[NotificationChannel, DeliveryProvider] = dict(providers or {})

    def register(self, channel: NotificationChannel, provider: DeliveryProvider) -> None:
        self._providers[channel] = provider

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._providers)

    async def send(self, request: DeliveryRequest) -> DeliveryResult:
        provider = self._providers.get(request.channel)
        if provider is None:
            raise DeliveryError(
                f"No delivery provider for channel {request.channel.value}",
                permanent=True,
                code="NO_PROVIDER",
            )
        return await provider.send(request)

    async def initialize(self) -> None:
        for provider in self._providers.values():
            await provider.initialize()

    async def cleanup(self) -> None:
        for provider in self._providers.values():
            await provider.cleanup()
