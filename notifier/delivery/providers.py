"""
Concrete delivery providers.

DiscordWebhookProvider posts chat messages through a webhook URL.
LoggingProvider simulates delivery for channels without a real transport.
"""

import logging
import re
from uuid import uuid4

import httpx

from notifier.delivery.base import DeliveryProvider
from notifier.errors import DeliveryError
from notifier.models import DeliveryFailure, DeliveryRequest, DeliveryResult

logger = logging.getLogger(__name__)

WEBHOOK_URL_PATTERN = re.compile(r"^https://[\w.-]+/api/webhooks/\d+/[\w-]+$")
DISCORD_MESSAGE_LIMIT = 2000


class DiscordWebhookProvider(DeliveryProvider):
    """Chat provider posting to Discord-compatible webhooks.

    The recipient is the webhook URL. 429 and 5xx responses and network
    errors are transient; other 4xx responses are permanent.
    """

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        username: str | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.username = username
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            )
        return self._client

    def validate_recipient(self, recipient: str) -> bool:
        return bool(WEBHOOK_URL_PATTERN.match(recipient))

    async def send(self, request: DeliveryRequest) -> DeliveryResult:
        if not self.validate_recipient(request.recipient):
            return DeliveryResult(
                success=False,
                provider="discord_webhook",
                error=DeliveryFailure(
                    code="INVALID_RECIPIENT",
                    message="Invalid webhook URL",
                    permanent=True,
                ),
            )

        payload: dict = {"content": request.content[:DISCORD_MESSAGE_LIMIT]}
        if self.username:
            payload["username"] = self.username

        try:
            response = await self.client.post(
                request.recipient, params={"wait": "true"}, json=payload
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"Webhook request failed: {e}", code="NETWORK") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise DeliveryError(
                f"Webhook returned {response.status_code}",
                code=f"HTTP_{response.status_code}",
            )
        if response.status_code >= 400:
            raise DeliveryError(
                f"Webhook rejected message with {response.status_code}",
                permanent=True,
                code=f"HTTP_{response.status_code}",
            )

        return DeliveryResult(
            success=True,
            message_id=self._message_id(response),
            provider="discord_webhook",
        )

    def _message_id(self, response: httpx.Response) -> str | None:
        """Message id from the response body; the message is delivered either way."""
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError:
            logger.warning(
                "Webhook accepted message with a non-JSON body",
                extra={"status_code": response.status_code},
            )
            return None
        if not isinstance(body, dict) or body.get("id") is None:
            return None
        return str(body["id"])

    async def cleanup(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        await super().cleanup()


class LoggingProvider(DeliveryProvider):
    """Simulated delivery: logs the payload and reports success."""

    def __init__(self, name: str = "simulated") -> None:
        self.name = name

    def validate_recipient(self, recipient: str) -> bool:
        return bool(recipient.strip())

    async def send(self, request: DeliveryRequest) -> DeliveryResult:
        if not self.validate_recipient(request.recipient):
            raise DeliveryError("Empty recipient", permanent=True, code="INVALID_RECIPIENT")

        logger.info(
            "[SIMULATED] Delivering notification",
            extra={
                "provider": self.name,
                "channel": request.channel.value,
                "recipient": request.recipient,
                "metadata": request.metadata,
            },
        )
        return DeliveryResult(
            success=True,
            message_id=f"{self.name}_{uuid4().hex[:12]}",
            provider=self.name,
        )
