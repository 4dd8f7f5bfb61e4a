"""
Configuration Module

Centralized, type-safe configuration management for the cache layer.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Key prefixes, timing bounds, enums and the lock release script

Usage:
------
```python
from stampede_cache.core.config import get_settings
from stampede_cache.core.config.constants import CacheKeyspace

settings = get_settings()
ttl = settings.cache.CACHE_SINGLE_ENTITY_TTL
prefix = CacheKeyspace.ENTITY_BY_ID  # "entity_id"
```

Environment Variables:
---------------------
```bash
REDIS_HOST=127.0.0.1
REDIS_PORT=6379
REDIS_PASSWORD=...

CACHE_SINGLE_ENTITY_TTL=600
CACHE_LOCK_TTL=30
CACHE_LOCK_MAX_WAIT_MS=5000
```
"""

from stampede_cache.core.config.constants import CacheKeyspace, ConnectionState
from stampede_cache.core.config.settings import (
    ApplicationSettings,
    CacheSettings,
    LoggingSettings,
    RedisSettings,
    Settings,
    get_settings,
    reload_settings,
)

__all__ = [
    "ApplicationSettings",
    "CacheKeyspace",
    "CacheSettings",
    "ConnectionState",
    "LoggingSettings",
    "RedisSettings",
    "Settings",
    "get_settings",
    "reload_settings",
]
