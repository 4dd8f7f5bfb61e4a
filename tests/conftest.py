"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tests.test_fixtures.cache_factory import InMemoryRedis  # noqa: E402


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def cache_settings():
    """
    Real Settings with test-friendly lock timings.

    Built without reading .env so local configuration cannot leak into tests.
    """
    from stampede_cache.core.config.settings import Settings

    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        ENABLE_CACHING=True,
        CACHE_LOCK_TTL=30,
        CACHE_LOCK_MAX_WAIT_MS=2000,
        REDIS_RECONNECT_COOLDOWN=30.0,
    )


# ============================================================================
# Environment-Based Integration Toggles
# ============================================================================


@pytest.fixture(scope="session")
def use_real_redis():
    """Check if real Redis should be used for integration tests."""
    return os.getenv("USE_REAL_REDIS", "0").lower() in ("1", "true", "yes")


# ============================================================================
# Store and Cache Fixtures
# ============================================================================


@pytest.fixture
def in_memory_redis():
    """In-memory KeyValueStore honouring SET NX EX, SCAN and compare-and-delete."""
    return InMemoryRedis()


@pytest.fixture
def distributed_lock(in_memory_redis):
    from stampede_cache.infrastructure.cache.distributed_lock import DistributedLock

    return DistributedLock(in_memory_redis)


@pytest.fixture
def cache_manager(in_memory_redis, distributed_lock, cache_settings):
    """CacheManager wired to the in-memory store."""
    from stampede_cache.infrastructure.cache.cache_manager import CacheManager

    return CacheManager(in_memory_redis, distributed_lock, cache_settings)
