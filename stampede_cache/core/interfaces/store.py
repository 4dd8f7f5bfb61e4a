"""
Key-Value Store Protocol

Abstract protocol for the store behind the cache manager and the distributed
lock, enabling dependency injection of the real Redis client or a test double.

Architectural Decision: Protocol-based abstraction
- CacheManager and DistributedLock depend on this protocol, not on redis-py
- Tests inject an in-memory double with the same atomicity guarantees
- Type-safe interface with runtime checking
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Protocol defining the store operations the cache layer relies on.

    Every data operation raises a CacheError subclass on failure; callers at
    the cache-manager boundary translate those into fail-soft results.
    """

    async def connect(self) -> None:
        """
        Establish connection to the store.

        Raises:
            CacheConnectionError: If connection fails
        """
        ...

    async def disconnect(self) -> None:
        """Close the connection without triggering a reconnect."""
        ...

    async def ping(self) -> bool:
        """Liveness probe. Returns False instead of raising."""
        ...

    async def is_available(self) -> bool:
        """
        Health-gated availability check used before cache operations.

        Returns False immediately when the store is known to be down.
        """
        ...

    async def get(self, key: str) -> str | None:
        """Return the raw value or None when the key is absent."""
        ...

    async def set(self, key: str, value: str, ttl: int | None = None, nx: bool = False) -> bool:
        """
        Set a value, optionally only if absent (SET NX) and with expiry (EX).

        Returns:
            bool: True if the value was written
        """
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns the number of keys removed."""
        ...

    async def scan_keys(self, pattern: str) -> list[str]:
        """Enumerate keys matching a glob pattern."""
        ...

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Atomically delete ``key`` only if its value equals ``expected``."""
        ...

    async def info(self, section: str | None = None) -> dict[str, Any]:
        """Server INFO, optionally for a single section."""
        ...

    async def dbsize(self) -> int:
        """Number of keys in the selected database."""
        ...
