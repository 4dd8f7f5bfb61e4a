"""
Cache Key Construction

Deterministic mapping from a logical query shape to a single Redis key:

    <keyspace>:<param1>:<param2>:...     (None params dropped)
    <keyspace>:default                   (every param omitted)

Parameter order is fixed per builder, so the same query always lands on the
same key and omitting a trailing parameter is the same as passing None.

Note: dropping None is positional. ``key_for_paginated_list(1, None, "date")``
and ``key_for_paginated_list(1, "date")`` would collide; callers fill in
defaults consistently before building list keys.
"""

from typing import Any

from stampede_cache.core.config.constants import (
    KEY_DEFAULT_SUFFIX,
    KEY_DELIMITER,
    CacheKeyspace,
)


def build_cache_key(kind: CacheKeyspace | str, *params: Any) -> str:
    """
    Build a namespaced cache key.

    Args:
        kind: Keyspace prefix
        *params: Request-shaping parameters, in a fixed order

    Returns:
        str: ``"<kind>:<joined params>"`` or ``"<kind>:default"``

    Example:
        >>> build_cache_key(CacheKeyspace.PAGINATED_LIST, 1, 10, None)
        'entity_pagination:1:10'
    """
    prefix = kind.value if isinstance(kind, CacheKeyspace) else str(kind)
    joined = KEY_DELIMITER.join(str(p) for p in params if p is not None)
    return f"{prefix}{KEY_DELIMITER}{joined or KEY_DEFAULT_SUFFIX}"


def key_for_entity_by_id(entity_id: Any) -> str:
    return build_cache_key(CacheKeyspace.ENTITY_BY_ID, entity_id)


def key_for_entity_by_slug(slug: str) -> str:
    return build_cache_key(CacheKeyspace.ENTITY_BY_SLUG, slug)


def key_for_paginated_list(
    page: int | None = None,
    limit: int | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    search: str | None = None,
) -> str:
    """Key for one page of a listing, in page/limit/sort_by/sort_order/search order."""
    return build_cache_key(CacheKeyspace.PAGINATED_LIST, page, limit, sort_by, sort_order, search)


def key_for_public_list(*params: Any) -> str:
    return build_cache_key(CacheKeyspace.PUBLIC_LIST, *params)


def lock_key(resource: str) -> str:
    """Store key for a lock on ``resource``: ``lock:<resource>``."""
    return f"{CacheKeyspace.LOCK.value}{KEY_DELIMITER}{resource}"


def namespace_pattern(kind: CacheKeyspace | str) -> str:
    """Glob matching every key in a keyspace."""
    prefix = kind.value if isinstance(kind, CacheKeyspace) else str(kind)
    return f"{prefix}{KEY_DELIMITER}*"
