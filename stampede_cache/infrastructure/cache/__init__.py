"""
Cache Module

Stampede-safe read-through caching on Redis.
"""

from .cache_keys import (
    build_cache_key,
    key_for_entity_by_id,
    key_for_entity_by_slug,
    key_for_paginated_list,
    key_for_public_list,
    lock_key,
    namespace_pattern,
)
from .cache_manager import CacheManager, CacheObserver
from .connection_health import ConnectionHealth
from .distributed_lock import DistributedLock
from .invalidation import CacheInvalidator
from .lifecycle import cache_lifespan, create_cache_manager, start_cache, stop_cache
from .redis_client import RedisClient

__all__ = [
    "CacheInvalidator",
    "CacheManager",
    "CacheObserver",
    "ConnectionHealth",
    "DistributedLock",
    "RedisClient",
    "build_cache_key",
    "cache_lifespan",
    "create_cache_manager",
    "key_for_entity_by_id",
    "key_for_entity_by_slug",
    "key_for_paginated_list",
    "key_for_public_list",
    "lock_key",
    "namespace_pattern",
    "start_cache",
    "stop_cache",
]
