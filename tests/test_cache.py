"""Tests for cache providers and the caching notification store."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import NOW, make_record
from notifier.models import NotificationFilter, NotificationStatus
from notifier.services.cache import MemoryCacheProvider, RedisCacheProvider
from notifier.stores import CachedNotificationStore, InMemoryNotificationStore


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 100.0

    def __call__(self) -> float:
        return self.value


# ============================================================================
# Cache Provider Tests
# ============================================================================

class TestMemoryCacheProvider:
    """Tests for the process-local TTL cache."""

    async def test_entries_expire_after_ttl(self):
        """Values are served until their TTL elapses."""
        clock = FakeMonotonic()
        cache = MemoryCacheProvider(clock=clock)

        await cache.set("k", "v", ttl_seconds=10)
        clock.value += 9.9
        assert await cache.get("k") == "v"

        clock.value += 0.1
        assert await cache.get("k") is None

    async def test_delete_prefix(self):
        """delete_prefix removes only matching keys."""
        cache = MemoryCacheProvider()
        await cache.set("notification:1", "a", 60)
        await cache.set("notification:2", "b", 60)
        await cache.set("other:1", "c", 60)

        assert await cache.delete_prefix("notification:") == 2
        assert await cache.get("other:1") == "c"


class TestRedisCacheProvider:
    """Tests for the redis-backed cache with a mocked client."""

    async def test_keys_are_namespaced(self, redis_client):
        """Keys are prefixed and TTLs passed as ex."""
        cache = RedisCacheProvider("redis://localhost:6379/0")

        await cache.set("notification:1", "payload", 300)
        await cache.get("notification:1")
        await cache.delete("notification:1")

        redis_client.set.assert_awaited_once_with(
            "notifier:notification:1", "payload", ex=300
        )
        redis_client.get.assert_awaited_once_with("notifier:notification:1")
        redis_client.delete.assert_awaited_once_with("notifier:notification:1")

    async def test_delete_prefix_scans_and_deletes(self, redis_client):
        """delete_prefix deletes every scanned key in one call."""

        async def scan_iter(match):
            assert match == "notifier:notifications:filter:*"
            for key in ("notifier:notifications:filter:a", "notifier:notifications:filter:b"):
                yield key

        redis_client.scan_iter = scan_iter
        cache = RedisCacheProvider("redis://localhost:6379/0")

        deleted = await cache.delete_prefix("notifications:filter:")

        assert deleted == 2
        redis_client.delete.assert_awaited_once_with(
            "notifier:notifications:filter:a", "notifier:notifications:filter:b"
        )

    async def test_close(self, redis_client):
        cache = RedisCacheProvider("redis://localhost:6379/0")

        await cache.close()

        redis_client.aclose.assert_awaited_once()


# ============================================================================
# CachedNotificationStore Tests
# ============================================================================

class TestCachedNotificationStore:
    """Tests for the caching decorator over NotificationStore."""

    async def test_get_served_from_cache(self, inner, cached_store):
        """Repeated lookups hit the wrapped store once."""
        record = await cached_store.create(make_record())
        inner.get = AsyncMock(wraps=inner.get)

        first = await cached_store.get(record.id)
        second = await cached_store.get(record.id)

        assert inner.get.await_count == 1
        assert second.id == first.id == record.id
        assert second.scheduled_for == record.scheduled_for
        assert second.data == record.data

    async def test_writes_invalidate_record(self, cached_store):
        """Status changes are visible immediately after a cached read."""
        record = await cached_store.create(make_record())
        await cached_store.get(record.id)

        await cached_store.update_status(record.id, NotificationStatus.FAILED, "later", NOW)
        assert (await cached_store.get(record.id)).status == NotificationStatus.FAILED

        await cached_store.increment_retry_count(record.id)
        assert (await cached_store.get(record.id)).retry_count == 1

        await cached_store.mark_delivered(record.id, {"message_id": "m1"}, NOW)
        assert (await cached_store.get(record.id)).status == NotificationStatus.SENT

    async def test_filter_results_cached_and_invalidated(self, inner, cached_store):
        """Filter queries are cached until the next write."""
        filters = NotificationFilter(statuses=[NotificationStatus.PENDING])
        await cached_store.create(make_record())
        inner.find_by_filters = AsyncMock(wraps=inner.find_by_filters)

        assert len(await cached_store.find_by_filters(filters)) == 1
        assert len(await cached_store.find_by_filters(filters)) == 1
        assert inner.find_by_filters.await_count == 1

        await cached_store.create(make_record())

        assert len(await cached_store.find_by_filters(filters)) == 2
        assert inner.find_by_filters.await_count == 2

    async def test_candidate_queries_bypass_cache(self, inner, cached_store, cache):
        """find_pending_due and find_retryable always hit the wrapped store."""
        await cached_store.create(make_record())
        inner.find_pending_due = AsyncMock(wraps=inner.find_pending_due)
        inner.find_retryable = AsyncMock(wraps=inner.find_retryable)

        await cached_store.find_pending_due(NOW)
        await cached_store.find_pending_due(NOW)
        await cached_store.find_retryable(5)

        assert inner.find_pending_due.await_count == 2
        assert inner.find_retryable.await_count == 1
        assert cache._entries == {}

    async def test_cleanup_drops_cached_records(self, cached_store):
        """Deleted records are not served from the cache afterwards."""
        record = await cached_store.create(
            make_record(status=NotificationStatus.SENT, created_at=NOW.replace(year=2025))
        )
        await cached_store.get(record.id)

        assert await cached_store.cleanup_before(NOW) == 1
        assert await cached_store.get(record.id) is None


# ============================================================================
# Pytest Fixtures
# ============================================================================

@pytest.fixture
def redis_client():
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock()
    client.delete = AsyncMock()
    client.aclose = AsyncMock()
    with patch("notifier.services.cache.aioredis.from_url", return_value=client):
        yield client


@pytest.fixture
def cache() -> MemoryCacheProvider:
    return MemoryCacheProvider()


@pytest.fixture
def inner() -> InMemoryNotificationStore:
    return InMemoryNotificationStore()


@pytest.fixture
def cached_store(inner, cache) -> CachedNotificationStore:
    return CachedNotificationStore(inner, cache, ttl_seconds=60)
