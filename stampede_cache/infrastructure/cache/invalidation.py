"""
Cache Invalidation

Namespace-wide deletion after writes. Invalidation is best-effort: a key that
survives a failed pass still expires through its TTL, so nothing here raises.

Lock keys (``lock:*``) are never touched; deleting a live lock would let a
second writer in while the first is still filling.
"""

from typing import TYPE_CHECKING, Any

from stampede_cache.core.config.constants import INVALIDATION_KEYSPACES, LISTING_KEYSPACES
from stampede_cache.core.logging.logger import get_logger
from stampede_cache.infrastructure.cache.cache_keys import (
    key_for_entity_by_id,
    key_for_entity_by_slug,
    namespace_pattern,
)
from stampede_cache.infrastructure.monitoring.metrics_collector import get_metrics_collector

if TYPE_CHECKING:
    from stampede_cache.infrastructure.cache.cache_manager import CacheManager

logger = get_logger(__name__)


class CacheInvalidator:
    """
    Deletes cached entries by namespace.

    STAGE-INV: Cache invalidation

    Works on top of CacheManager.delete / delete_pattern, which already fail
    soft, so a broken store simply yields a count of 0.
    """

    def __init__(self, cache: "CacheManager"):
        self._cache = cache
        self._metrics = get_metrics_collector()

    async def invalidate_related_caches(self) -> int:
        """
        Clear every entity namespace (public lists, pages, by-id, by-slug).

        STAGE-INV.1: Full invalidation

        Returns:
            Total number of keys deleted
        """
        total = 0
        for keyspace in INVALIDATION_KEYSPACES:
            total += await self._cache.delete_pattern(namespace_pattern(keyspace))

        self._metrics.record_invalidated(total)
        logger.info("Related caches invalidated", stage="INV.1", keys_deleted=total)
        return total

    async def invalidate_entity(self, entity_id: Any, slug: str | None = None) -> int:
        """
        Drop one entity's keys plus every listing that may contain it.

        STAGE-INV.2: Entity invalidation

        Args:
            entity_id: Entity identifier
            slug: Entity slug, when the entity has one

        Returns:
            Number of keys deleted
        """
        total = 0
        if await self._cache.delete(key_for_entity_by_id(entity_id)):
            total += 1
        if slug and await self._cache.delete(key_for_entity_by_slug(slug)):
            total += 1

        for keyspace in LISTING_KEYSPACES:
            total += await self._cache.delete_pattern(namespace_pattern(keyspace))

        self._metrics.record_invalidated(total)
        logger.info(
            "Entity caches invalidated",
            stage="INV.2",
            entity_id=str(entity_id),
            slug=slug,
            keys_deleted=total,
        )
        return total
