"""
Stampede-Safe Cache Manager

Architecture:
    CacheManager (Public API)
        ├── KeyValueStore (RedisClient in production)
        ├── DistributedLock (one authoritative fill per key)
        ├── CacheObserver (Stats, logging, Prometheus)
        └── CacheInvalidator (Namespace-wide deletion)

Read path (get_with_lock):
    store unavailable ─────────────────────────────► fetch_fn()
    GET hit ───────────────────────────────────────► cached value
    miss → acquire lock:fetch:<key>
        acquired → GET again → hit ────────────────► cached value
                             → miss → fetch, SET ──► fresh value
        not acquired → jitter 100-300ms → GET ─────► cached value
                                        → miss ────► fetch_fn() (not cached)

Failure policy:
    - Store errors never propagate; the caller gets fetch_fn()'s result
    - fetch_fn errors always propagate, after the lock is released
    - fetch_fn is never re-run because the store failed after it succeeded

Author: System Architect
Date: 2026-10-19
"""

import asyncio
import inspect
import random
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import orjson

from stampede_cache.core.config.constants import (
    FETCH_LOCK_PREFIX,
    KEY_DELIMITER,
    LOCK_FALLBACK_MAX_DELAY,
    LOCK_FALLBACK_MIN_DELAY,
)
from stampede_cache.core.config.settings import Settings, get_settings
from stampede_cache.core.exceptions import CacheError, CacheSerializationError
from stampede_cache.core.interfaces.store import KeyValueStore
from stampede_cache.core.logging.logger import get_logger, log_stage
from stampede_cache.infrastructure.cache.distributed_lock import DistributedLock
from stampede_cache.infrastructure.cache.invalidation import CacheInvalidator
from stampede_cache.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

FetchFn = Callable[[], Any]


# =============================================================================
# LAYER 1: SERIALIZATION
# =============================================================================


def encode_value(value: Any) -> str:
    """Serialize a payload to JSON text for storage."""
    try:
        return orjson.dumps(value).decode("utf-8")
    except TypeError as e:
        raise CacheSerializationError(
            message=f"Value is not JSON serializable: {e}",
            details={"type": type(value).__name__},
        )


def decode_value(raw: str) -> Any:
    """Deserialize stored JSON text."""
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise CacheSerializationError(message=f"Cached value is not valid JSON: {e}")


# =============================================================================
# LAYER 2: OBSERVABILITY
# Tracks stats, logs operations, feeds Prometheus
# =============================================================================


class CacheObserver:
    """
    Tracks cache outcomes and logs operations.

    Responsibility: All side effects of the read path (logging, counters,
    Prometheus). The manager only reports what happened.

    Stats Tracked:
    - hits, misses
    - bypasses (store unavailable or caching disabled)
    - fallback_fetches (fetch without caching after a lock timeout or store error)
    - lock_timeouts, store_errors
    """

    def __init__(self, logger_instance=None):
        self._logger = logger_instance or logger
        self._metrics = get_metrics_collector()

        self._hits = 0
        self._misses = 0
        self._bypasses = 0
        self._fallback_fetches = 0
        self._lock_timeouts = 0
        self._store_errors = 0

    def record_hit(self, key: str, stage: str = "CACHE.2") -> None:
        self._hits += 1
        self._metrics.record_cache_lookup("hit")
        log_stage(self._logger, stage, "Cache hit", level="debug", cache_key=key)

    def record_miss(self, key: str) -> None:
        self._misses += 1
        self._metrics.record_cache_lookup("miss")
        log_stage(self._logger, "CACHE.2", "Cache miss", level="debug", cache_key=key)

    def record_bypass(self, key: str, reason: str) -> None:
        self._bypasses += 1
        self._metrics.record_cache_lookup("bypass")
        self._metrics.record_fetch("degraded")
        log_stage(self._logger, "CACHE.1", "Cache bypassed", level="debug", cache_key=key, reason=reason)

    def record_locked_fetch(self, key: str) -> None:
        self._metrics.record_fetch("locked")
        log_stage(self._logger, "CACHE.4", "Fetching under lock", level="debug", cache_key=key)

    def record_lock_timeout(self, key: str) -> None:
        self._lock_timeouts += 1
        log_stage(self._logger, "CACHE.5", "Lock not obtained, waiting for holder", level="debug", cache_key=key)

    def record_fallback_fetch(self, key: str) -> None:
        self._fallback_fetches += 1
        self._metrics.record_fetch("fallback")
        log_stage(self._logger, "CACHE.5", "Fetching without cache write", level="debug", cache_key=key)

    def record_store_error(self, operation: str, key: str, error: BaseException) -> None:
        self._store_errors += 1
        self._metrics.record_store_error(operation)
        log_stage(
            self._logger,
            "CACHE.6",
            f"Cache {operation} failed",
            level="warning",
            cache_key=key,
            error=str(error),
            error_type=type(error).__name__,
        )

    def get_stats(self) -> dict[str, Any]:
        """
        Get cache performance statistics.

        Returns:
            Dict with outcome counters and hit rate over hits + misses
        """
        lookups = self._hits + self._misses
        hit_rate = self._hits / lookups if lookups > 0 else 0.0

        return {
            "hits": self._hits,
            "misses": self._misses,
            "bypasses": self._bypasses,
            "fallback_fetches": self._fallback_fetches,
            "lock_timeouts": self._lock_timeouts,
            "store_errors": self._store_errors,
            "total_lookups": lookups,
            "hit_rate": round(hit_rate, 3),
        }


# =============================================================================
# LAYER 3: PUBLIC API
# =============================================================================


class CacheManager:
    """
    Read-through cache with stampede protection.

    Usage:
        cache = CacheManager(redis_client)

        entity = await cache.get_with_lock(
            key_for_entity_by_id(42),
            lambda: repository.get(42),
            ttl=600,
        )

        await cache.invalidate_related_caches()

    Every public operation fails soft: store trouble is logged and reported
    through the return value, never raised.
    """

    def __init__(
        self,
        store: KeyValueStore,
        lock: DistributedLock | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize cache manager. No network I/O happens here.

        STAGE-CACHE.0: Cache manager initialization
        """
        settings = settings or get_settings()

        self._store = store
        self._lock = lock or DistributedLock(store)
        self._observer = CacheObserver()
        self._invalidator = CacheInvalidator(self)

        self._enabled = settings.ENABLE_CACHING
        self._lock_ttl = settings.cache.CACHE_LOCK_TTL
        self._lock_max_wait_ms = settings.cache.CACHE_LOCK_MAX_WAIT_MS

        logger.info(
            "Cache manager initialized",
            stage="CACHE.0",
            caching_enabled=self._enabled,
            lock_ttl=self._lock_ttl,
            lock_max_wait_ms=self._lock_max_wait_ms,
        )

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def enabled(self) -> bool:
        return self._enabled

    # -------------------------------------------------------------------------
    # Read-through with stampede protection
    # -------------------------------------------------------------------------

    async def get_with_lock(
        self,
        cache_key: str,
        fetch_fn: FetchFn,
        ttl: int,
        lock_ttl: int | None = None,
        max_wait_ms: int | None = None,
    ) -> Any:
        """
        Return the cached value for ``cache_key``, filling it at most once
        across all concurrent callers.

        STAGE-CACHE.1-5: Stampede-safe read-through

        Args:
            cache_key: Store key for the value
            fetch_fn: Zero-argument callable producing the value (sync or async)
            ttl: Expiry for the cached value in seconds
            lock_ttl: Expiry for the fill lock (defaults to CACHE_LOCK_TTL)
            max_wait_ms: Lock wait budget (defaults to CACHE_LOCK_MAX_WAIT_MS)

        Returns:
            The cached or freshly fetched value

        Raises:
            Whatever fetch_fn raises. Store failures are never raised.
        """
        # STAGE-CACHE.1: Health gate
        if not self._enabled:
            self._observer.record_bypass(cache_key, "caching_disabled")
            return await self._call(fetch_fn)
        try:
            available = await self._store.is_available()
        except CacheError as e:
            self._observer.record_store_error("health", cache_key, e)
            available = False
        if not available:
            self._observer.record_bypass(cache_key, "store_unavailable")
            return await self._call(fetch_fn)

        lock_resource = f"{FETCH_LOCK_PREFIX}{KEY_DELIMITER}{cache_key}"

        # STAGE-CACHE.2/3: Fast-path read, then lock on miss
        try:
            hit, value = await self._lookup(cache_key)
            if hit:
                self._observer.record_hit(cache_key)
                return value
            self._observer.record_miss(cache_key)

            token = await self._lock.acquire(
                lock_resource,
                lock_ttl or self._lock_ttl,
                self._lock_max_wait_ms if max_wait_ms is None else max_wait_ms,
            )
        except CacheError as e:
            self._observer.record_store_error("get", cache_key, e)
            self._observer.record_fallback_fetch(cache_key)
            return await self._call(fetch_fn)

        # STAGE-CACHE.5: Someone else is filling
        if token is None:
            self._observer.record_lock_timeout(cache_key)
            return await self._wait_then_fetch(cache_key, fetch_fn)

        # STAGE-CACHE.4: We are the authoritative writer
        try:
            return await self._fill_under_lock(cache_key, fetch_fn, ttl)
        finally:
            await self._lock.release(lock_resource, token)

    async def _fill_under_lock(self, cache_key: str, fetch_fn: FetchFn, ttl: int) -> Any:
        try:
            hit, value = await self._lookup(cache_key)
        except CacheError as e:
            self._observer.record_store_error("get", cache_key, e)
            self._observer.record_fallback_fetch(cache_key)
            return await self._call(fetch_fn)

        if hit:
            # Filled by the previous holder while we waited
            self._observer.record_hit(cache_key, stage="CACHE.4")
            return value

        self._observer.record_locked_fetch(cache_key)
        data = await self._call(fetch_fn)
        await self._store_quietly(cache_key, data, ttl)
        return data

    async def _wait_then_fetch(self, cache_key: str, fetch_fn: FetchFn) -> Any:
        await asyncio.sleep(random.uniform(LOCK_FALLBACK_MIN_DELAY, LOCK_FALLBACK_MAX_DELAY))

        try:
            hit, value = await self._lookup(cache_key)
        except CacheError as e:
            self._observer.record_store_error("get", cache_key, e)
            hit, value = False, None

        if hit:
            self._observer.record_hit(cache_key, stage="CACHE.5")
            return value

        # Not written back: the lock holder may still be writing
        self._observer.record_fallback_fetch(cache_key)
        return await self._call(fetch_fn)

    async def _lookup(self, cache_key: str) -> tuple[bool, Any]:
        """GET and decode. A stored JSON null is a hit."""
        raw = await self._store.get(cache_key)
        if raw is None:
            return False, None
        return True, decode_value(raw)

    async def _store_quietly(self, cache_key: str, data: Any, ttl: int) -> bool:
        try:
            await self._store.set(cache_key, encode_value(data), ttl=ttl)
        except CacheError as e:
            self._observer.record_store_error("set", cache_key, e)
            return False
        log_stage(logger, "CACHE.4", "Cache filled", level="debug", cache_key=cache_key, ttl=ttl)
        return True

    @staticmethod
    async def _call(fetch_fn: FetchFn) -> Any:
        result = fetch_fn()
        if inspect.isawaitable(result):
            result = await result
        return result

    # -------------------------------------------------------------------------
    # Core Cache Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """
        Get a decoded value.

        Returns:
            The value, or None on miss, store failure or undecodable entry
        """
        if not self._enabled:
            return None
        try:
            hit, value = await self._lookup(key)
        except CacheError as e:
            self._observer.record_store_error("get", key, e)
            return None
        return value if hit else None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """
        Store a value with expiry.

        Returns:
            True if written, False on failure
        """
        if not self._enabled:
            return False
        return await self._store_quietly(key, value, ttl)

    async def delete(self, key: str) -> bool:
        """Delete one key. Returns True if a key was removed."""
        try:
            removed = await self._store.delete(key)
        except CacheError as e:
            self._observer.record_store_error("delete", key, e)
            return False
        log_stage(logger, "CACHE.7", "Cache key deleted", level="debug", cache_key=key, removed=removed)
        return removed > 0

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Keys are enumerated with SCAN and removed in one DEL batch.

        Returns:
            Number of keys removed (0 on failure)
        """
        try:
            keys = await self._store.scan_keys(pattern)
            if not keys:
                return 0
            removed = await self._store.delete(*keys)
        except CacheError as e:
            self._observer.record_store_error("delete_pattern", pattern, e)
            return 0

        log_stage(logger, "CACHE.7", "Cache pattern deleted", level="debug", pattern=pattern, removed=removed)
        return removed

    async def count_keys(self, pattern: str) -> int:
        """Number of keys matching a glob pattern (0 on failure)."""
        try:
            return len(await self._store.scan_keys(pattern))
        except CacheError as e:
            self._observer.record_store_error("scan", pattern, e)
            return 0

    async def invalidate_related_caches(self) -> int:
        """Clear every entity namespace. See CacheInvalidator."""
        return await self._invalidator.invalidate_related_caches()

    async def invalidate_entity(self, entity_id: Any, slug: str | None = None) -> int:
        return await self._invalidator.invalidate_entity(entity_id, slug)

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    async def is_connected(self) -> bool:
        """Whether the store is reachable, per its health-gated probe."""
        try:
            return await self._store.is_available()
        except CacheError as e:
            self._observer.record_store_error("health", "", e)
            return False

    async def get_status(self) -> dict[str, Any]:
        """
        Store status for dashboards.

        Returns:
            Dict with connected flag, mode, memory usage and key count
        """
        if not await self.is_connected():
            return {"connected": False, "mode": "disconnected"}

        try:
            memory = await self._store.info("memory")
            key_count = await self._store.dbsize()
        except CacheError as e:
            self._observer.record_store_error("status", "", e)
            return {"connected": False, "mode": "error", "error": str(e)}

        return {
            "connected": True,
            "mode": "redis",
            "memory": memory.get("used_memory_human"),
            "key_count": key_count,
        }

    def stats(self) -> dict[str, Any]:
        """
        Get cache performance statistics.

        Returns:
            Dict with outcome counters, hit rate and configuration flags
        """
        return {
            **self._observer.get_stats(),
            "caching_enabled": self._enabled,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
