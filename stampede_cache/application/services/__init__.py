"""
Application Services Package
=============================

Business-facing services that wrap an uncached data source with the
stampede-safe cache. Read handlers and mutation handlers call these; they
never talk to Redis directly.
"""

from stampede_cache.application.services.cached_entity_service import (
    DEFAULT_WARM_UP_QUERIES,
    CachedEntityService,
    EntitySource,
    ListQuery,
)

__all__ = [
    "CachedEntityService",
    "DEFAULT_WARM_UP_QUERIES",
    "EntitySource",
    "ListQuery",
]
