"""
Exception Module

Structured exception hierarchy for the cache layer.

Module Structure:
-----------------
- **base.py**: StampedeCacheError base class + ConfigurationError
- **cache.py**: Redis and codec exceptions

Usage:
------
```python
from stampede_cache.core.exceptions import CacheConnectionError, CacheError
```
"""

from stampede_cache.core.exceptions.base import ConfigurationError, StampedeCacheError
from stampede_cache.core.exceptions.cache import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
)

__all__ = [
    # Base
    "StampedeCacheError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    "CacheSerializationError",
]
