"""Bounded in-process message channel between pipeline components."""

import asyncio
import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChannelClosedError(Exception):
    """Publishing to a closed channel."""


class EventChannel(Generic[T]):
    """Typed wrapper over a bounded asyncio.Queue.

    Producers publish well-typed events; a single consumer reads them.
    """

    def __init__(self, name: str, maxsize: int = 1000) -> None:
        self.name = name
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    async def publish(self, event: T) -> None:
        """Publish, waiting while the channel is full."""
        if self._closed:
            raise ChannelClosedError(f"Channel {self.name} is closed")
        await self._queue.put(event)

    def publish_nowait(self, event: T) -> None:
        """Publish without waiting; raises asyncio.QueueFull when full."""
        if self._closed:
            raise ChannelClosedError(f"Channel {self.name} is closed")
        self._queue.put_nowait(event)

    async def get(self) -> T:
        return await self._queue.get()

    def drain(self) -> list[T]:
        """Take every queued event without waiting."""
        events: list[T] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events

    def close(self) -> None:
        self._closed = True
        logger.debug(f"Channel {self.name} closed", extra={"pending": self.qsize()})
