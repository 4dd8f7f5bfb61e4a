"""
Health Checker Module

Read/write health check for the cache store: a PING says the socket is alive,
this says the store actually accepts and returns data.

Author: System Architect
Date: 2026-10-19
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from stampede_cache.core.config.constants import HEALTH_CHECK_KEY, HEALTH_CHECK_TTL
from stampede_cache.core.exceptions import CacheError
from stampede_cache.core.interfaces.store import KeyValueStore
from stampede_cache.core.logging.logger import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CacheHealthChecker:
    """
    Write/read/delete round-trip against a short-lived probe key.

    STAGE-H: Health check

    Usage:
        checker = CacheHealthChecker(redis_client)
        result = await checker.check()
        # {"healthy": True, "redis_connected": True, "can_read_write": True, ...}
    """

    def __init__(self, store: KeyValueStore):
        self._store = store

    async def check(self) -> dict[str, Any]:
        """
        Run the probe.

        STAGE-H.1: Read/write probe

        Returns:
            Dict with healthy, redis_connected, can_read_write, status and
            error (on failure). Never raises.
        """
        result: dict[str, Any] = {
            "healthy": False,
            "redis_connected": False,
            "can_read_write": False,
            "status": HealthStatus.UNHEALTHY.value,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

        if not await self._store.is_available():
            result["error"] = "Redis not connected"
            return result
        result["redis_connected"] = True

        probe = f"ok-{time.time_ns()}"
        try:
            await self._store.set(HEALTH_CHECK_KEY, probe, ttl=HEALTH_CHECK_TTL)
            value = await self._store.get(HEALTH_CHECK_KEY)
            await self._store.delete(HEALTH_CHECK_KEY)
        except CacheError as e:
            logger.warning("Cache health check failed", stage="H.1", error=str(e))
            result["status"] = HealthStatus.DEGRADED.value
            result["error"] = str(e)
            return result

        if value != probe:
            result["status"] = HealthStatus.DEGRADED.value
            result["error"] = "Read-back value mismatch"
            return result

        result.update(
            healthy=True,
            can_read_write=True,
            status=HealthStatus.HEALTHY.value,
        )
        return result
