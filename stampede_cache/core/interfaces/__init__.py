"""
Core Interfaces Module

Protocols for the collaborators the cache layer depends on.

Components:
-----------
- **store.py**: KeyValueStore protocol implemented by RedisClient and test doubles
"""

from stampede_cache.core.interfaces.store import KeyValueStore

__all__ = ["KeyValueStore"]
