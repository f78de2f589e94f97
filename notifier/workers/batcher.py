"""Dispatch batcher with a short-lived in-memory retry queue.

Sends go out in fixed-size batches with a pause between batches so a
burst of due notifications stays under provider rate limits. Items in a
batch are sent concurrently and fail independently.

A failed send is retried after a flat delay a few times before the
dispatch id is dropped and DispatchError is raised. This covers a channel
that is briefly unavailable; sustained failures are left to the
persisted backoff in NotificationDispatcher.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from notifier.delivery.base import DeliveryProvider
from notifier.errors import DeliveryError, DispatchError
from notifier.models import (
    DeliveryFailure,
    DeliveryRequest,
    DeliveryResult,
    NotificationChannel,
    utcnow,
)

logger = logging.getLogger(__name__)

BATCH_SIZE = 5
BATCH_DELAY_SECONDS = 1.0
RETRY_DELAY_SECONDS = 5.0
MAX_RETRIES = 3


@dataclass(frozen=True)
class DeliveryTarget:
    """Where a dispatch goes."""

    channel: NotificationChannel
    recipient: str


@dataclass
class DispatchItem:
    dispatch_id: str
    content: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class DispatchOutcome:
    """Per-item result of dispatch_batch: either a result or an error."""

    dispatch_id: str
    result: DeliveryResult | None = None
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.result is not None


@dataclass
class RetryQueueEntry:
    """Dispatch waiting for its next in-memory retry."""

    attempts: int
    last_attempt: datetime
    payload: dict[str, Any] = field(default_factory=dict)


class DispatchBatcher:
    """Rate-limited sender in front of a DeliveryProvider."""

    def __init__(
        self,
        provider: DeliveryProvider,
        batch_size: int = BATCH_SIZE,
        batch_delay: float = BATCH_DELAY_SECONDS,
        retry_delay: float = RETRY_DELAY_SECONDS,
        max_retries: int = MAX_RETRIES,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.provider = provider
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self._sleep = sleep
        self._clock = clock
        self._retry_queue: dict[str, RetryQueueEntry] = {}

    async def _send(
        self, target: DeliveryTarget, content: str, payload: dict[str, Any]
    ) -> DeliveryResult:
        result = await self.provider.send(
            DeliveryRequest(
                channel=target.channel,
                recipient=target.recipient,
                content=content,
                metadata=payload,
            )
        )
        if not result.success:
            failure = result.error or DeliveryFailure(message="Delivery failed")
            raise DeliveryError(
                failure.message, permanent=failure.permanent, code=failure.code
            )
        return result

    async def dispatch(
        self,
        target: DeliveryTarget,
        content: str,
        dispatch_id: str,
        payload: dict[str, Any] | None = None,
    ) -> DeliveryResult:
        """Send now, retrying transient failures after a flat delay.

        Raises:
            DeliveryError: The provider reported a permanent failure
            DispatchError: Transient failures outlasted max_retries
        """
        payload = payload or {}
        attempts = 0

        while True:
            attempts += 1
            try:
                result = await self._send(target, content, payload)
            except DeliveryError as e:
                if e.permanent:
                    self._retry_queue.pop(dispatch_id, None)
                    raise
                error: Exception = e
            except Exception as e:
                error = e
            else:
                if self._retry_queue.pop(dispatch_id, None) is not None:
                    logger.info(
                        f"Dispatch {dispatch_id} succeeded after {attempts} attempts",
                        extra={"dispatch_id": dispatch_id, "attempts": attempts},
                    )
                return result

            if attempts > self.max_retries:
                self._retry_queue.pop(dispatch_id, None)
                logger.error(
                    f"Dispatch {dispatch_id} dropped after {attempts} attempts",
                    extra={
                        "dispatch_id": dispatch_id,
                        "channel": target.channel.value,
                        "error": str(error),
                    },
                )
                raise DispatchError(dispatch_id, attempts, str(error)) from error

            self._retry_queue[dispatch_id] = RetryQueueEntry(
                attempts=attempts,
                last_attempt=self._clock(),
                payload=payload,
            )
            logger.warning(
                f"Dispatch {dispatch_id} failed, retrying in {self.retry_delay}s",
                extra={
                    "dispatch_id": dispatch_id,
                    "attempts": attempts,
                    "error": str(error),
                },
            )
            await self._sleep(self.retry_delay)

    async def dispatch_batch(
        self, target: DeliveryTarget, items: Sequence[DispatchItem]
    ) -> list[DispatchOutcome]:
        """Send items in batches of batch_size, pausing between batches.

        Returns one outcome per item, in input order. A failing item never
        affects its siblings.
        """
        outcomes: list[DispatchOutcome] = []

        for start in range(0, len(items), self.batch_size):
            if start > 0:
                logger.debug(f"Waiting {self.batch_delay}s before next batch")
                await self._sleep(self.batch_delay)

            batch = items[start : start + self.batch_size]
            results = await asyncio.gather(
                *(
                    self.dispatch(target, item.content, item.dispatch_id, item.payload)
                    for item in batch
                ),
                return_exceptions=True,
            )

            for item, result in zip(batch, results):
                if isinstance(result, Exception):
                    outcomes.append(DispatchOutcome(item.dispatch_id, error=result))
                elif isinstance(result, BaseException):
                    raise result
                else:
                    outcomes.append(DispatchOutcome(item.dispatch_id, result=result))

            logger.debug(
                f"Batch of {len(batch)} sent to {target.channel.value}",
                extra={
                    "failed": sum(1 for o in outcomes[-len(batch) :] if not o.success)
                },
            )

        return outcomes

    def get_retry_queue(self) -> dict[str, RetryQueueEntry]:
        """Snapshot of dispatches waiting for an in-memory retry."""
        return dict(self._retry_queue)

    def clear_retry_queue(self) -> None:
        self._retry_queue.clear()
