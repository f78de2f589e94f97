"""Caching decorator for NotificationStore.

Wraps any NotificationStore and implements the same interface. Lookups by
id and filter queries are cached; every write invalidates the record and
all cached filter results. The dispatcher's candidate queries
(find_pending_due, find_retryable) always go to the wrapped store.
"""

import json
import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from notifier.models import NotificationFilter, NotificationRecord, NotificationStatus
from notifier.services.cache import CacheProvider
from notifier.stores.base import NotificationStore

logger = logging.getLogger(__name__)

RECORD_PREFIX = "notification:"
FILTER_PREFIX = "notifications:filter:"


def _dump(record: NotificationRecord) -> dict[str, Any]:
    return record.model_dump(mode="json")


def _load(raw: dict[str, Any]) -> NotificationRecord:
    return NotificationRecord.model_validate(raw).normalize_timestamps()


class CachedNotificationStore(NotificationStore):
    """NotificationStore that serves repeated reads from a CacheProvider."""

    def __init__(
        self,
        inner: NotificationStore,
        cache: CacheProvider,
        ttl_seconds: int = 300,
    ) -> None:
        self._inner = inner
        self._cache = cache
        self._ttl = ttl_seconds

    async def _invalidate(self, notification_id: UUID) -> None:
        await self._cache.delete(f"{RECORD_PREFIX}{notification_id}")
        await self._cache.delete_prefix(FILTER_PREFIX)

    async def create(self, record: NotificationRecord) -> NotificationRecord:
        created = await self._inner.create(record)
        await self._invalidate(created.id)
        return created

    async def get(self, notification_id: UUID) -> NotificationRecord | None:
        key = f"{RECORD_PREFIX}{notification_id}"
        cached = await self._cache.get(key)
        if cached is not None:
            logger.debug("Cache hit", extra={"key": key})
            return _load(json.loads(cached))

        record = await self._inner.get(notification_id)
        if record is not None:
            await self._cache.set(key, json.dumps(_dump(record)), self._ttl)
        return record

    async def find_pending_due(self, now: datetime) -> list[NotificationRecord]:
        return await self._inner.find_pending_due(now)

    async def find_retryable(self, max_retries: int) -> list[NotificationRecord]:
        return await self._inner.find_retryable(max_retries)

    async def update_status(
        self,
        notification_id: UUID,
        status: NotificationStatus,
        message: str | None = None,
        attempted_at: datetime | None = None,
    ) -> None:
        await self._inner.update_status(notification_id, status, message, attempted_at)
        await self._invalidate(notification_id)

    async def increment_retry_count(self, notification_id: UUID) -> int:
        count = await self._inner.increment_retry_count(notification_id)
        await self._invalidate(notification_id)
        return count

    async def mark_delivered(
        self,
        notification_id: UUID,
        result: dict[str, Any] | None = None,
        delivered_at: datetime | None = None,
    ) -> None:
        await self._inner.mark_delivered(notification_id, result, delivered_at)
        await self._invalidate(notification_id)

    async def find_by_filters(
        self, filters: NotificationFilter
    ) -> list[NotificationRecord]:
        key = f"{FILTER_PREFIX}{filters.cache_key()}"
        cached = await self._cache.get(key)
        if cached is not None:
            return [_load(raw) for raw in json.loads(cached)]

        records = await self._inner.find_by_filters(filters)
        await self._cache.set(key, json.dumps([_dump(r) for r in records]), self._ttl)
        return records

    async def cleanup_before(self, before: datetime) -> int:
        deleted = await self._inner.cleanup_before(before)
        if deleted:
            await self._cache.delete_prefix(RECORD_PREFIX)
            await self._cache.delete_prefix(FILTER_PREFIX)
        return deleted
