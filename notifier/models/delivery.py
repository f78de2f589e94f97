"""Delivery request/result schemas shared by providers and the dispatcher."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from notifier.models.notification import NotificationChannel, utcnow


class DeliveryRequest(BaseModel):
    """Rendered payload handed to a delivery provider."""

    channel: NotificationChannel
    recipient: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class DeliveryFailure(BaseModel):
    """Typed error reported by a provider instead of raising."""

    code: str | None = None
    message: str
    permanent: bool = False


class DeliveryResult(BaseModel):
    """Outcome of a single provider send."""

    success: bool
    message_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    provider: str | None = None
    error: DeliveryFailure | None = None

    def to_record(self) -> dict[str, Any]:
        """JSON-safe form stored on NotificationRecord.delivery_result."""
        return self.model_dump(mode="json", exclude_none=True)
