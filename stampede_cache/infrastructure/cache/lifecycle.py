"""
Cache Lifecycle

Explicit construction and teardown of the cache stack. Host applications own
the instances; nothing here is a module-level singleton.

Usage:
    async with cache_lifespan() as cache:
        entity = await cache.get_with_lock(key, fetch, ttl=600)
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from stampede_cache.core.config.settings import Settings, get_settings
from stampede_cache.core.exceptions import CacheConnectionError
from stampede_cache.core.logging.logger import get_logger
from stampede_cache.infrastructure.cache.cache_manager import CacheManager
from stampede_cache.infrastructure.cache.distributed_lock import DistributedLock
from stampede_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)


def create_cache_manager(settings: Settings | None = None) -> CacheManager:
    """
    Build RedisClient → DistributedLock → CacheManager without connecting.

    STAGE-LIFE.1: Wiring
    """
    settings = settings or get_settings()
    client = RedisClient(settings.redis)
    return CacheManager(client, DistributedLock(client), settings)


async def start_cache(settings: Settings | None = None) -> CacheManager:
    """
    Build and connect the cache stack.

    STAGE-LIFE.2: Startup

    A refused connection is not fatal: the manager is returned anyway and
    serves every read straight from the fetch function until Redis is back.
    """
    settings = settings or get_settings()
    manager = create_cache_manager(settings)

    if not settings.ENABLE_CACHING:
        logger.info("Caching disabled, skipping Redis connection", stage="LIFE.2")
        return manager

    try:
        await manager.store.connect()
    except CacheConnectionError as e:
        logger.warning(
            "Redis unavailable at startup, running without cache",
            stage="LIFE.2",
            error=e.message,
        )
    return manager


async def stop_cache(manager: CacheManager) -> None:
    """
    Disconnect the store. Never raises.

    STAGE-LIFE.3: Shutdown
    """
    store = manager.store
    if isinstance(store, RedisClient):
        await store.safe_disconnect()
    else:
        await store.disconnect()
    logger.info("Cache stopped", stage="LIFE.3", stats=manager.stats())


@asynccontextmanager
async def cache_lifespan(settings: Settings | None = None) -> AsyncIterator[CacheManager]:
    """Start the cache for the duration of the block."""
    manager = await start_cache(settings)
    try:
        yield manager
    finally:
        await stop_cache(manager)
