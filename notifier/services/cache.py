"""Cache providers used by the caching notification store."""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class CacheProvider(ABC):
    """Minimal async string cache with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        pass

    async def close(self) -> None:
        """Release provider resources."""


class MemoryCacheProvider(CacheProvider):
    """Process-local TTL cache."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[float, str]] = {}
        self._clock = clock

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (self._clock() + ttl_seconds, value)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)


class RedisCacheProvider(CacheProvider):
    """Redis-backed cache shared between processes."""

    def __init__(self, url: str, namespace: str = "notifier") -> None:
        self._client = aioredis.from_url(url, decode_responses=True)
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> str | None:
        return await self._client.get(self._key(key))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client.set(self._key(key), value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def delete_prefix(self, prefix: str) -> int:
        keys = [k async for k in self._client.scan_iter(match=f"{self._key(prefix)}*")]
        if keys:
            await self._client.delete(*keys)
        return len(keys)

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis cache connection closed")
