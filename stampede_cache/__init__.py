"""
stampede-cache

Redis-backed read-through cache with cache-stampede protection.

Usage:
    from stampede_cache import cache_lifespan, key_for_entity_by_id

    async with cache_lifespan() as cache:
        entity = await cache.get_with_lock(
            key_for_entity_by_id(42), lambda: repository.get(42), ttl=600
        )
"""

from stampede_cache.application.services import CachedEntityService, EntitySource, ListQuery
from stampede_cache.core.config import get_settings
from stampede_cache.core.exceptions import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
    StampedeCacheError,
)
from stampede_cache.infrastructure.cache import (
    CacheManager,
    DistributedLock,
    RedisClient,
    cache_lifespan,
    create_cache_manager,
    key_for_entity_by_id,
    key_for_entity_by_slug,
    key_for_paginated_list,
    start_cache,
    stop_cache,
)
from stampede_cache.infrastructure.monitoring import CacheHealthChecker

__version__ = "1.0.0"

__all__ = [
    "CacheConnectionError",
    "CacheError",
    "CacheHealthChecker",
    "CacheKeyError",
    "CacheManager",
    "CacheSerializationError",
    "CachedEntityService",
    "DistributedLock",
    "EntitySource",
    "ListQuery",
    "RedisClient",
    "StampedeCacheError",
    "cache_lifespan",
    "create_cache_manager",
    "get_settings",
    "key_for_entity_by_id",
    "key_for_entity_by_slug",
    "key_for_paginated_list",
    "start_cache",
    "stop_cache",
]
