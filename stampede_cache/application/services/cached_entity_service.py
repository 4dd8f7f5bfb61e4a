"""
Cached Entity Service
=====================

WHAT IS THIS SERVICE?
---------------------
CachedEntityService puts the stampede-safe cache in front of an entity source
(a repository, an ORM, a remote API). Read handlers call it instead of the
source; write handlers call its invalidation methods after a mutation.

WHAT GETS CACHED?
-----------------
- Public listings only (``visible == 1``). Private or unfiltered listings go
  straight to the source, so per-user data never lands in a shared cache.
- The public feed (always ``visible == 1``) under its own keyspace.
- Single entities by id and by slug.

TTLs:
    listings  → CACHE_PAGINATION_TTL
    feed      → CACHE_PUBLIC_LIST_TTL
    entities  → CACHE_SINGLE_ENTITY_TTL
    fill lock → CACHE_LOCK_TTL

FAILURE MODEL:
--------------
- Source errors propagate to the caller unchanged
- Cache errors never do; the service degrades to reading the source
- Invalidation, warm-up and stats never raise
"""

import asyncio
from dataclasses import asdict, dataclass, replace
from typing import Any, Protocol, runtime_checkable

from stampede_cache.core.config.constants import CacheKeyspace
from stampede_cache.core.config.settings import Settings, get_settings
from stampede_cache.core.logging.logger import get_logger
from stampede_cache.infrastructure.cache.cache_keys import (
    key_for_entity_by_id,
    key_for_entity_by_slug,
    key_for_paginated_list,
    key_for_public_list,
    namespace_pattern,
)
from stampede_cache.infrastructure.cache.cache_manager import CacheManager

logger = get_logger(__name__)

PUBLIC_VISIBILITY = 1


@dataclass(frozen=True)
class ListQuery:
    """Shape of a listing request."""

    page: int = 1
    limit: int = 10
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    search: str | None = None
    visible: int | None = None

    @property
    def is_public(self) -> bool:
        return self.visible == PUBLIC_VISIBILITY


# First pages of the default public listing
DEFAULT_WARM_UP_QUERIES: tuple[ListQuery, ...] = (
    ListQuery(page=1, limit=10, visible=PUBLIC_VISIBILITY),
    ListQuery(page=1, limit=20, visible=PUBLIC_VISIBILITY),
    ListQuery(page=2, limit=10, visible=PUBLIC_VISIBILITY),
)


@runtime_checkable
class EntitySource(Protocol):
    """The uncached data source behind the service."""

    async def list_entities(self, query: ListQuery) -> Any:
        ...

    async def get_by_id(self, entity_id: Any) -> Any:
        ...

    async def get_by_slug(self, slug: str) -> Any:
        ...


class CachedEntityService:
    """
    Read-through caching for entity lookups and listings.

    Usage:
        service = CachedEntityService(cache_manager, repository)

        page = await service.list_entities_cached(ListQuery(page=1, visible=1))
        entity = await service.get_by_slug_cached("hello-world")

        # after a write
        await service.invalidate_entity(entity_id=42, slug="hello-world")
    """

    def __init__(self, cache: CacheManager, source: EntitySource, settings: Settings | None = None):
        settings = settings or get_settings()
        self._cache = cache
        self._source = source
        self._list_ttl = settings.cache.CACHE_PAGINATION_TTL
        self._public_list_ttl = settings.cache.CACHE_PUBLIC_LIST_TTL
        self._entity_ttl = settings.cache.CACHE_SINGLE_ENTITY_TTL
        self._lock_ttl = settings.cache.CACHE_LOCK_TTL

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_entities_cached(self, query: ListQuery | None = None) -> Any:
        """
        Listing page, cached only when the query is public.

        STAGE-SVC.1: Cached listing
        """
        query = query or ListQuery()
        if not query.is_public:
            logger.debug("Non-public listing, bypassing cache", stage="SVC.1")
            return await self._source.list_entities(query)

        cache_key = key_for_paginated_list(
            query.page, query.limit, query.sort_by, query.sort_order, query.search
        )
        return await self._cache.get_with_lock(
            cache_key,
            lambda: self._source.list_entities(query),
            self._list_ttl,
            self._lock_ttl,
        )

    async def list_public_entities_cached(self, query: ListQuery | None = None) -> Any:
        """
        Public feed page. The query is always forced to public visibility.

        STAGE-SVC.1: Cached public feed
        """
        query = replace(query or ListQuery(), visible=PUBLIC_VISIBILITY)
        cache_key = key_for_public_list(
            query.page, query.limit, query.sort_by, query.sort_order, query.search
        )
        return await self._cache.get_with_lock(
            cache_key,
            lambda: self._source.list_entities(query),
            self._public_list_ttl,
            self._lock_ttl,
        )

    async def get_by_id_cached(self, entity_id: Any) -> Any:
        """STAGE-SVC.2: Cached lookup by id."""
        return await self._cache.get_with_lock(
            key_for_entity_by_id(entity_id),
            lambda: self._source.get_by_id(entity_id),
            self._entity_ttl,
            self._lock_ttl,
        )

    async def get_by_slug_cached(self, slug: str) -> Any:
        """STAGE-SVC.3: Cached lookup by slug."""
        return await self._cache.get_with_lock(
            key_for_entity_by_slug(slug),
            lambda: self._source.get_by_slug(slug),
            self._entity_ttl,
            self._lock_ttl,
        )

    # =========================================================================
    # Invalidation
    # =========================================================================

    async def invalidate_all(self) -> int:
        """Drop every cached entity and listing. Call after any write."""
        logger.info("Invalidating all entity caches", stage="SVC.4")
        return await self._cache.invalidate_related_caches()

    async def invalidate_entity(self, entity_id: Any, slug: str | None = None) -> int:
        """Drop one entity plus every listing that may include it."""
        return await self._cache.invalidate_entity(entity_id, slug)

    # =========================================================================
    # Warm-up and stats
    # =========================================================================

    async def warm_up(self, queries: list[ListQuery] | None = None) -> int:
        """
        Pre-load common listing pages concurrently.

        STAGE-SVC.5: Cache warm-up

        A query whose source call fails is logged and skipped.

        Returns:
            Number of queries warmed successfully
        """
        queries = list(queries) if queries is not None else list(DEFAULT_WARM_UP_QUERIES)
        logger.info("Warming up entity caches", stage="SVC.5", queries=len(queries))

        results = await asyncio.gather(
            *(self.list_entities_cached(query) for query in queries),
            return_exceptions=True,
        )

        warmed = 0
        for query, result in zip(queries, results):
            if isinstance(result, Exception):
                logger.error(
                    "Cache warm-up failed for query",
                    stage="SVC.5",
                    query=asdict(query),
                    error=str(result),
                    error_type=type(result).__name__,
                )
            else:
                warmed += 1

        logger.info("Entity cache warm-up completed", stage="SVC.5", warmed=warmed)
        return warmed

    async def cache_stats(self) -> dict[str, Any]:
        """
        Store status plus cached key counts per namespace.

        Returns:
            Dict with store_status, per-namespace counts and total
        """
        pagination, by_id, by_slug, public = await asyncio.gather(
            self._cache.count_keys(namespace_pattern(CacheKeyspace.PAGINATED_LIST)),
            self._cache.count_keys(namespace_pattern(CacheKeyspace.ENTITY_BY_ID)),
            self._cache.count_keys(namespace_pattern(CacheKeyspace.ENTITY_BY_SLUG)),
            self._cache.count_keys(namespace_pattern(CacheKeyspace.PUBLIC_LIST)),
        )

        return {
            "store_status": await self._cache.get_status(),
            "pagination_keys": pagination,
            "single_entity_keys": by_id + by_slug,
            "public_list_keys": public,
            "total_keys": pagination + by_id + by_slug + public,
            "stats": self._cache.stats(),
        }
