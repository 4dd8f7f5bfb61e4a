"""
Unit Tests for CacheManager

Tests the stampede-safe read-through, the fail-soft operations and status
reporting against the in-memory store.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest

from stampede_cache.core.config.settings import Settings
from stampede_cache.core.exceptions import CacheConnectionError, CacheSerializationError
from stampede_cache.infrastructure.cache.cache_keys import key_for_entity_by_id, lock_key
from stampede_cache.infrastructure.cache.cache_manager import (
    CacheManager,
    CacheObserver,
    decode_value,
    encode_value,
)
from stampede_cache.infrastructure.cache.distributed_lock import DistributedLock
from tests.test_fixtures.cache_factory import CacheTestFactory, InMemoryRedis

KEY = key_for_entity_by_id(1)
FILL_LOCK = lock_key(f"fetch:{KEY}")


def counting_fetch(value, delay: float = 0.0):
    """Async fetch function that counts its invocations."""
    calls = {"count": 0}

    async def fetch():
        calls["count"] += 1
        if delay:
            await asyncio.sleep(delay)
        return value

    return fetch, calls


@pytest.mark.unit
class TestSerialization:
    """Test the JSON codec."""

    def test_encode_produces_text(self):
        assert encode_value({"id": 1, "tags": ["a"]}) == '{"id":1,"tags":["a"]}'

    def test_decode_round_trip_of_nested_payload(self):
        payload = {"items": [{"id": 1}, {"id": 2}], "total": 2, "next": None}
        assert decode_value(encode_value(payload)) == payload

    def test_encode_unserializable_raises(self):
        with pytest.raises(CacheSerializationError):
            encode_value(object())

    def test_decode_invalid_raises(self):
        with pytest.raises(CacheSerializationError):
            decode_value("{not json")


@pytest.mark.unit
class TestGetWithLockReadThrough:
    """Hit, miss and fill behaviour."""

    @pytest.mark.asyncio
    async def test_hit_does_not_call_fetch(self, cache_manager, in_memory_redis):
        in_memory_redis.data[KEY] = '{"id":1,"title":"cached"}'
        fetch = AsyncMock(return_value={"id": 1, "title": "fresh"})

        result = await cache_manager.get_with_lock(KEY, fetch, ttl=60)

        assert result == {"id": 1, "title": "cached"}
        fetch.assert_not_awaited()
        assert FILL_LOCK not in in_memory_redis.data

    @pytest.mark.asyncio
    async def test_prefilled_store_is_served(self):
        store = CacheTestFactory.in_memory_store({KEY: '{"id":1}'})
        fetch = AsyncMock()

        assert await CacheTestFactory.cache_manager(store).get_with_lock(KEY, fetch, ttl=60) == {"id": 1}
        fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_miss_fetches_once_and_stores(self, cache_manager, in_memory_redis):
        fetch, calls = counting_fetch({"id": 1})

        first = await cache_manager.get_with_lock(KEY, fetch, ttl=60)
        second = await cache_manager.get_with_lock(KEY, fetch, ttl=60)

        assert first == second == {"id": 1}
        assert calls["count"] == 1
        assert orjson.loads(in_memory_redis.data[KEY]) == {"id": 1}
        assert 59 < in_memory_redis.ttl(KEY) <= 60

    @pytest.mark.asyncio
    async def test_fill_lock_is_released(self, cache_manager, in_memory_redis):
        fetch, _ = counting_fetch([1, 2, 3])

        await cache_manager.get_with_lock(KEY, fetch, ttl=60)

        assert FILL_LOCK not in in_memory_redis.data

    @pytest.mark.asyncio
    async def test_cached_null_is_a_hit(self, cache_manager, in_memory_redis):
        """A stored JSON null is a legitimate value, not a miss."""
        fetch, calls = counting_fetch(None)

        assert await cache_manager.get_with_lock(KEY, fetch, ttl=60) is None
        assert await cache_manager.get_with_lock(KEY, fetch, ttl=60) is None
        assert calls["count"] == 1
        assert in_memory_redis.data[KEY] == "null"

    @pytest.mark.asyncio
    async def test_sync_fetch_function_is_accepted(self, cache_manager):
        result = await cache_manager.get_with_lock(KEY, lambda: {"sync": True}, ttl=60)
        assert result == {"sync": True}

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, cache_manager, in_memory_redis):
        fetch, calls = counting_fetch({"id": 1})

        await cache_manager.get_with_lock(KEY, fetch, ttl=5)
        in_memory_redis.advance(6)
        await cache_manager.get_with_lock(KEY, fetch, ttl=5)

        assert calls["count"] == 2

    @pytest.mark.asyncio
    async def test_custom_lock_ttl_is_used(self, in_memory_redis, cache_settings):
        lock = DistributedLock(in_memory_redis)
        lock.acquire = AsyncMock(wraps=lock.acquire)
        manager = CacheManager(in_memory_redis, lock, cache_settings)

        await manager.get_with_lock(KEY, lambda: 1, ttl=60, lock_ttl=7)

        lock.acquire.assert_awaited_once_with(f"fetch:{KEY}", 7, cache_settings.CACHE_LOCK_MAX_WAIT_MS)


@pytest.mark.unit
class TestGetWithLockStampede:
    """Concurrent misses collapse into a single fetch."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("callers", [10, 50])
    async def test_concurrent_misses_fetch_once(self, cache_manager, callers):
        fetch, calls = counting_fetch({"id": 1, "expensive": True}, delay=0.05)

        results = await asyncio.gather(
            *(cache_manager.get_with_lock(KEY, fetch, ttl=60) for _ in range(callers))
        )

        assert calls["count"] == 1
        assert all(result == {"id": 1, "expensive": True} for result in results)

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block_each_other(self, cache_manager):
        fetch, calls = counting_fetch("value", delay=0.02)

        await asyncio.gather(*(cache_manager.get_with_lock(f"entity_id:{i}", fetch, ttl=60) for i in range(5)))

        assert calls["count"] == 5


@pytest.mark.unit
class TestGetWithLockContention:
    """Behaviour when the fill lock cannot be obtained."""

    @pytest.mark.asyncio
    async def test_lock_timeout_fetches_without_caching(self, cache_manager, in_memory_redis):
        """No value after the backoff: fetch directly and leave the cache to the holder."""
        in_memory_redis.data[FILL_LOCK] = "other-holder"
        fetch, calls = counting_fetch({"id": 1})

        result = await cache_manager.get_with_lock(KEY, fetch, ttl=60, max_wait_ms=0)

        assert result == {"id": 1}
        assert calls["count"] == 1
        assert KEY not in in_memory_redis.data
        assert in_memory_redis.data[FILL_LOCK] == "other-holder"
        assert cache_manager.stats()["lock_timeouts"] == 1
        assert cache_manager.stats()["fallback_fetches"] == 1

    @pytest.mark.asyncio
    async def test_lock_timeout_returns_value_written_during_backoff(self, cache_manager, in_memory_redis):
        in_memory_redis.data[FILL_LOCK] = "other-holder"
        fetch, calls = counting_fetch({"id": "mine"})

        async def holder_finishes():
            await asyncio.sleep(0.02)
            in_memory_redis.data[KEY] = '{"id":"holder"}'

        writer = asyncio.create_task(holder_finishes())
        result = await cache_manager.get_with_lock(KEY, fetch, ttl=60, max_wait_ms=0)
        await writer

        assert result == {"id": "holder"}
        assert calls["count"] == 0

    @pytest.mark.asyncio
    async def test_waiter_reads_value_after_holder_releases(self, cache_manager, in_memory_redis):
        """A waiter that gets the lock re-checks the cache before fetching."""
        slow_fetch, slow_calls = counting_fetch("filled", delay=0.1)
        fast_fetch, fast_calls = counting_fetch("should-not-run")

        first = asyncio.create_task(cache_manager.get_with_lock(KEY, slow_fetch, ttl=60))
        await asyncio.sleep(0.01)
        second = await cache_manager.get_with_lock(KEY, fast_fetch, ttl=60)

        assert await first == "filled"
        assert second == "filled"
        assert slow_calls["count"] == 1
        assert fast_calls["count"] == 0


@pytest.mark.unit
class TestGetWithLockFailures:
    """Store failures degrade to fetch; fetch failures propagate."""

    @pytest.mark.asyncio
    async def test_unavailable_store_falls_back_for_uncached_key(self):
        manager = CacheTestFactory.cache_manager(CacheTestFactory.unavailable_store())
        fetch, calls = counting_fetch({"id": 1})

        assert await manager.get_with_lock(KEY, fetch, ttl=60) == {"id": 1}
        assert calls["count"] == 1
        assert manager.stats()["bypasses"] == 1

    @pytest.mark.asyncio
    async def test_unavailable_store_falls_back_for_cached_key(self):
        store = CacheTestFactory.unavailable_store({KEY: '{"id":"stale"}'})
        manager = CacheManager(store)
        fetch, calls = counting_fetch({"id": "fresh"})

        assert await manager.get_with_lock(KEY, fetch, ttl=60) == {"id": "fresh"}
        assert calls["count"] == 1
        assert "get" not in store.operation_counts

    @pytest.mark.asyncio
    async def test_get_error_falls_back_to_fetch(self, cache_manager, in_memory_redis):
        in_memory_redis.failing_operations.add("get")
        fetch, calls = counting_fetch("value")

        assert await cache_manager.get_with_lock(KEY, fetch, ttl=60) == "value"
        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_set_error_returns_fetched_data_without_refetch(self, cache_manager, in_memory_redis):
        fetch, calls = counting_fetch("value")
        original_set = in_memory_redis.set

        async def set_fails_for_cache_key(key, value, ttl=None, nx=False):
            if key == KEY:
                raise CacheSerializationError("write failed")
            return await original_set(key, value, ttl=ttl, nx=nx)

        in_memory_redis.set = set_fails_for_cache_key

        assert await cache_manager.get_with_lock(KEY, fetch, ttl=60) == "value"
        assert calls["count"] == 1
        assert FILL_LOCK not in in_memory_redis.data

    @pytest.mark.asyncio
    async def test_unserializable_result_is_returned_uncached(self, cache_manager, in_memory_redis):
        marker = object()

        assert await cache_manager.get_with_lock(KEY, lambda: marker, ttl=60) is marker
        assert KEY not in in_memory_redis.data

    @pytest.mark.asyncio
    async def test_corrupt_entry_falls_back_to_fetch(self, cache_manager, in_memory_redis):
        in_memory_redis.data[KEY] = "{corrupt"
        fetch, calls = counting_fetch("fresh")

        assert await cache_manager.get_with_lock(KEY, fetch, ttl=60) == "fresh"
        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_fetch_error_propagates_and_releases_lock(self, cache_manager, in_memory_redis):
        fetch = AsyncMock(side_effect=LookupError("entity missing"))

        with pytest.raises(LookupError, match="entity missing"):
            await cache_manager.get_with_lock(KEY, fetch, ttl=60)

        fetch.assert_awaited_once()
        assert FILL_LOCK not in in_memory_redis.data
        assert KEY not in in_memory_redis.data

    @pytest.mark.asyncio
    async def test_health_check_error_falls_back_to_fetch(self, cache_manager, in_memory_redis):
        """A store that fails while being probed is treated like an unavailable one."""
        in_memory_redis.is_available = AsyncMock(
            side_effect=CacheConnectionError("ERR DB index is out of range")
        )
        fetch, calls = counting_fetch("value")

        assert await cache_manager.get_with_lock(KEY, fetch, ttl=60) == "value"
        assert calls["count"] == 1
        assert cache_manager.stats()["store_errors"] == 1
        assert KEY not in in_memory_redis.data

    @pytest.mark.asyncio
    async def test_fetch_error_propagates_when_store_unavailable(self):
        store = InMemoryRedis()
        store.available = False
        fetch = AsyncMock(side_effect=ValueError("db down"))

        with pytest.raises(ValueError):
            await CacheManager(store).get_with_lock(KEY, fetch, ttl=60)
        fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_caching_disabled_always_fetches(self, in_memory_redis):
        manager = CacheManager(in_memory_redis, settings=Settings(_env_file=None, ENABLE_CACHING=False))
        fetch, calls = counting_fetch("value")

        await manager.get_with_lock(KEY, fetch, ttl=60)
        await manager.get_with_lock(KEY, fetch, ttl=60)

        assert calls["count"] == 2
        assert in_memory_redis.data == {}


@pytest.mark.unit
class TestFailSoftOperations:
    """get / set / delete / delete_pattern never raise."""

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache_manager, in_memory_redis):
        assert await cache_manager.set("k", {"a": 1}, ttl=30) is True
        assert await cache_manager.get("k") == {"a": 1}
        assert 29 < in_memory_redis.ttl("k") <= 30

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, cache_manager):
        assert await cache_manager.get("missing") is None

    @pytest.mark.asyncio
    async def test_delete(self, cache_manager, in_memory_redis):
        in_memory_redis.data["k"] = "1"

        assert await cache_manager.delete("k") is True
        assert await cache_manager.delete("k") is False

    @pytest.mark.asyncio
    async def test_delete_pattern_only_matches_pattern(self, cache_manager, in_memory_redis):
        in_memory_redis.data.update({"entity_id:1": "1", "entity_id:2": "2", "entity_slug:a": "3"})

        assert await cache_manager.delete_pattern("entity_id:*") == 2
        assert list(in_memory_redis.data) == ["entity_slug:a"]

    @pytest.mark.asyncio
    async def test_delete_pattern_without_matches(self, cache_manager, in_memory_redis):
        assert await cache_manager.delete_pattern("nothing:*") == 0
        assert "delete" not in in_memory_redis.operation_counts

    @pytest.mark.asyncio
    async def test_operations_on_unavailable_store(self):
        store = CacheTestFactory.unavailable_store({"k": "1"})
        manager = CacheManager(store)

        assert await manager.get("k") is None
        assert await manager.set("k", 2, ttl=30) is False
        assert await manager.delete("k") is False
        assert await manager.delete_pattern("*") == 0
        assert manager.stats()["store_errors"] == 4

    @pytest.mark.asyncio
    async def test_single_failing_command_is_contained(self):
        store = CacheTestFactory.failing_store("delete", "scan")
        manager = CacheTestFactory.cache_manager(store)

        assert await manager.set("k", 1, ttl=30) is True
        assert await manager.delete("k") is False
        assert await manager.count_keys("*") == 0
        assert await manager.get("k") == 1


@pytest.mark.unit
class TestCacheStatus:
    """Test status and statistics reporting."""

    @pytest.mark.asyncio
    async def test_status_when_connected(self, cache_manager, in_memory_redis):
        in_memory_redis.data.update({"a": "1", "b": "2"})

        status = await cache_manager.get_status()

        assert status == {"connected": True, "mode": "redis", "memory": "1.00M", "key_count": 2}

    @pytest.mark.asyncio
    async def test_status_when_disconnected(self):
        store = CacheTestFactory.unavailable_store()

        assert await CacheManager(store).get_status() == {"connected": False, "mode": "disconnected"}

    @pytest.mark.asyncio
    async def test_status_on_error(self, cache_manager, in_memory_redis):
        in_memory_redis.failing_operations.add("info")

        status = await cache_manager.get_status()

        assert status["connected"] is False
        assert status["mode"] == "error"

    @pytest.mark.asyncio
    async def test_is_connected_follows_store(self, cache_manager, in_memory_redis):
        assert await cache_manager.is_connected() is True
        in_memory_redis.available = False
        assert await cache_manager.is_connected() is False

    @pytest.mark.asyncio
    async def test_stats_count_hits_and_misses(self, cache_manager):
        fetch, _ = counting_fetch("v")

        await cache_manager.get_with_lock(KEY, fetch, ttl=60)
        await cache_manager.get_with_lock(KEY, fetch, ttl=60)
        await cache_manager.get_with_lock(KEY, fetch, ttl=60)
        stats = cache_manager.stats()

        assert stats["misses"] == 1
        assert stats["hits"] == 2
        assert stats["hit_rate"] == pytest.approx(0.667, abs=0.001)
        assert stats["caching_enabled"] is True
        assert stats["timestamp"].endswith("Z")


@pytest.mark.unit
class TestCacheObserver:
    """Test the observer in isolation."""

    def test_empty_stats(self):
        stats = CacheObserver(logger_instance=MagicMock()).get_stats()

        assert stats["total_lookups"] == 0
        assert stats["hit_rate"] == 0.0

    def test_records_outcomes(self):
        observer = CacheObserver(logger_instance=MagicMock())

        observer.record_hit("k")
        observer.record_miss("k")
        observer.record_bypass("k", "store_unavailable")
        observer.record_lock_timeout("k")
        observer.record_fallback_fetch("k")
        observer.record_store_error("get", "k", RuntimeError("x"))
        stats = observer.get_stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["bypasses"] == 1
        assert stats["lock_timeouts"] == 1
        assert stats["fallback_fetches"] == 1
        assert stats["store_errors"] == 1
        assert stats["hit_rate"] == 0.5
