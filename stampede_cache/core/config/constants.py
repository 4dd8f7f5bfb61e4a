"""
System Constants and Enumerations

This module defines constants and enumerations shared by the cache layer.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for key prefixes and timing bounds
- Type-safe enums for keyspaces and connection state
- Lua scripts live next to the keys they operate on

Author: System Architect
Date: 2026-10-19
"""

from enum import Enum

# ============================================================================
# Cache Keyspaces
# ============================================================================


class CacheKeyspace(str, Enum):
    """
    Namespace prefixes for every key the cache layer writes.

    Each logical resource kind owns exactly one prefix so that pattern-based
    invalidation (``<prefix>:*``) can never reach into another namespace.
    """

    PUBLIC_LIST = "public_entities"
    ENTITY_BY_ID = "entity_id"
    ENTITY_BY_SLUG = "entity_slug"
    PAGINATED_LIST = "entity_pagination"
    LOCK = "lock"


# Namespaces cleared by a full invalidation pass (locks are never touched)
INVALIDATION_KEYSPACES: tuple[CacheKeyspace, ...] = (
    CacheKeyspace.PUBLIC_LIST,
    CacheKeyspace.PAGINATED_LIST,
    CacheKeyspace.ENTITY_BY_ID,
    CacheKeyspace.ENTITY_BY_SLUG,
)

# Namespaces holding collections; any entity write may change them
LISTING_KEYSPACES: tuple[CacheKeyspace, ...] = (
    CacheKeyspace.PUBLIC_LIST,
    CacheKeyspace.PAGINATED_LIST,
)

KEY_DELIMITER = ":"
KEY_DEFAULT_SUFFIX = "default"

# Resource prefix for locks guarding a cache fill: lock:fetch:<cache_key>
FETCH_LOCK_PREFIX = "fetch"


# ============================================================================
# Connection State
# ============================================================================


class ConnectionState(str, Enum):
    """
    Redis connection states.

    DISCONNECTED: No connection attempted yet, or closed cleanly
    CONNECTING: Handshake in progress
    CONNECTED: Handshake verified with PING
    ERROR: Last operation or handshake failed
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


# ============================================================================
# Lock Timing
# ============================================================================

# Jittered sleep between SET NX attempts (seconds)
LOCK_RETRY_MIN_DELAY = 0.010
LOCK_RETRY_MAX_DELAY = 0.030

# Jittered backoff before the last cache re-check when the lock was not obtained
LOCK_FALLBACK_MIN_DELAY = 0.100
LOCK_FALLBACK_MAX_DELAY = 0.300

# Compare-and-delete: only the holder of the token may remove the lock
LUA_COMPARE_AND_DELETE = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""


# ============================================================================
# Health Checks
# ============================================================================

HEALTH_CHECK_KEY = "health_check_test"
HEALTH_CHECK_TTL = 10

# Keys matched per SCAN round-trip during pattern deletion
SCAN_BATCH_SIZE = 500
