"""
Cache-Related Exceptions

All exceptions raised by the Redis client and the cache codec. None of these
ever escape CacheManager's public operations; they exist so the client can tell
the manager *why* the store was unusable.
"""

from stampede_cache.core.exceptions.base import StampedeCacheError


class CacheError(StampedeCacheError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to reach Redis.

    Common causes:
    - Redis server is down or refusing connections
    - Network connectivity issues
    - Incorrect host/port configuration
    - Authentication failure
    """
    pass


class CacheKeyError(CacheError):
    """
    Raised when a single Redis command fails.

    Common causes:
    - Operation timeout
    - Memory limit exceeded
    - Script execution failure
    """
    pass


class CacheSerializationError(CacheError):
    """Raised when a value cannot be encoded to, or decoded from, JSON."""
    pass
