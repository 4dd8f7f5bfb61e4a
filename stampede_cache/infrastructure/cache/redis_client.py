"""
Redis Client with Connection Health Gating

Architecture:
    RedisClient (Public API)
        ├── ConnectionManager (Connection lifecycle, no automatic retries)
        ├── ConnectionHealth (Reachability state machine)
        └── OperationExecutor (Command execution with error translation)

Failure Policy:
    - The pool is built with zero retries: a refused connection fails once
    - A connection-level failure closes the pool and flips health to ERROR
    - While ERROR, commands fail fast without touching the network
    - One reconnect probe is allowed per REDIS_RECONNECT_COOLDOWN window

Author: System Architect
Date: 2026-10-19
"""

import asyncio
import time
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from stampede_cache.core.config.constants import LUA_COMPARE_AND_DELETE, SCAN_BATCH_SIZE
from stampede_cache.core.config.settings import RedisSettings, get_settings
from stampede_cache.core.exceptions import CacheConnectionError, CacheKeyError
from stampede_cache.core.logging.logger import get_logger
from stampede_cache.infrastructure.cache.connection_health import ConnectionHealth

logger = get_logger(__name__)

# Errors that mean "the store is unreachable", as opposed to "this command failed"
_CONNECTION_ERRORS = (ConnectionError, TimeoutError, OSError)


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# Handles connection lifecycle and pooling
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Responsibility: Connection establishment, verification and cleanup.

    Pool Configuration:
    - Zero automatic retries (Retry(NoBackoff(), 0), retry_on_timeout=False)
    - Socket and connect timeouts from settings
    - Decode responses: True (returns strings, not bytes)
    """

    def __init__(self, settings: RedisSettings, health: ConnectionHealth):
        self._settings = settings
        self._health = health
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None

    async def connect(self) -> redis.Redis:
        """
        Establish a verified connection to Redis.

        STAGE-REDIS.2: Connection establishment

        Returns:
            redis.Redis: Connected Redis client

        Raises:
            CacheConnectionError: If the handshake fails
        """
        if self._health.is_connected and self._client:
            return self._client

        self._health.on_connecting()

        # STAGE-REDIS.2.1: Create connection pool
        pool = ConnectionPool(
            host=self._settings.REDIS_HOST,
            port=self._settings.REDIS_PORT,
            db=self._settings.REDIS_DB,
            password=self._settings.REDIS_PASSWORD,
            max_connections=self._settings.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=self._settings.REDIS_SOCKET_CONNECT_TIMEOUT,
            socket_timeout=self._settings.REDIS_SOCKET_TIMEOUT,
            retry_on_timeout=False,
            retry=Retry(NoBackoff(), 0),
            health_check_interval=self._settings.REDIS_HEALTH_CHECK_INTERVAL,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool)

        # STAGE-REDIS.2.2: Verify connection with ping
        # Every exit other than success must leave CONNECTING and release the pool
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            self._health.on_error(e)
            await self._close(client, pool)
            raise CacheConnectionError.from_exception(
                e,
                f"Failed to connect to Redis: {e}",
                host=self._settings.REDIS_HOST,
                port=self._settings.REDIS_PORT,
                db=self._settings.REDIS_DB,
            ).with_suggestion(
                "Check REDIS_HOST / REDIS_PORT / REDIS_DB, credentials and that redis-server is running"
            )
        except asyncio.CancelledError:
            self._health.on_error("Redis handshake cancelled")
            await self._close(client, pool)
            raise

        self._pool = pool
        self._client = client
        self._health.on_ready()

        logger.info(
            "Redis connected successfully",
            stage="REDIS.2",
            host=self._settings.REDIS_HOST,
            port=self._settings.REDIS_PORT,
            db=self._settings.REDIS_DB,
        )
        return client

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        client, pool = self._client, self._pool
        self._client = None
        self._pool = None
        self._health.on_close()
        await self._close(client, pool)
        logger.info("Redis disconnected", stage="REDIS.3")

    async def drop(self, error: BaseException) -> None:
        """
        Record a connection-level failure and release the pool.

        Keeping the pool around would let redis-py dial the dead server again on
        the next command; dropping it leaves the decision to the health check.
        """
        self._health.on_error(error)
        client, pool = self._client, self._pool
        self._client = None
        self._pool = None
        await self._close(client, pool)

    @staticmethod
    async def _close(client: redis.Redis | None, pool: ConnectionPool | None) -> None:
        try:
            if client is not None:
                await client.aclose()
            if pool is not None:
                await pool.disconnect()
        except (RedisError, OSError) as e:
            logger.debug("Redis close error (non-critical)", stage="REDIS.3", error=str(e))

    def get_client(self) -> redis.Redis | None:
        return self._client


# =============================================================================
# LAYER 2: OPERATION EXECUTION
# Executes Redis commands with consistent error translation
# =============================================================================


class OperationExecutor:
    """
    Executes Redis commands with health gating and error translation.

    Responsibility: Turn redis-py exceptions into CacheConnectionError (store
    unreachable) or CacheKeyError (command failed), and keep ConnectionHealth
    in sync with what the commands observe.
    """

    def __init__(self, conn_mgr: ConnectionManager, health: ConnectionHealth):
        self._conn_mgr = conn_mgr
        self._health = health

    async def _client(self) -> redis.Redis:
        """
        Return a usable client or fail fast.

        A store known to be down is not contacted again until the reconnect
        cooldown has elapsed.
        """
        client = self._conn_mgr.get_client()
        if client is not None and self._health.is_connected:
            return client

        if self._health.should_attempt_reconnect():
            return await self._conn_mgr.connect()

        raise CacheConnectionError(
            message="Redis unavailable",
            details={"state": self._health.state.value, "last_error": self._health.last_error},
        )

    async def _run(self, operation: str, stage: str, details: dict[str, Any], command):
        client = await self._client()
        try:
            return await command(client)
        except _CONNECTION_ERRORS as e:
            await self._conn_mgr.drop(e)
            raise CacheConnectionError.from_exception(e, f"Redis {operation} failed: {e}", **details)
        except RedisError as e:
            logger.error(f"Redis {operation} failed", stage=stage, error=str(e), **details)
            raise CacheKeyError.from_exception(e, f"Redis {operation} failed: {e}", **details)

    async def ping(self) -> bool:
        """PING round-trip. Connection failures flip health to ERROR."""
        client = self._conn_mgr.get_client()
        if client is None:
            return False
        try:
            return bool(await client.ping())
        except _CONNECTION_ERRORS as e:
            await self._conn_mgr.drop(e)
        except RedisError as e:
            logger.debug("Redis PING failed", stage="REDIS.PING", error=str(e))
        return False

    async def get(self, key: str) -> str | None:
        return await self._run(
            "GET", "REDIS.GET", {"key": key}, lambda c: c.get(key)
        )

    async def set(self, key: str, value: str, ttl: int | None = None, nx: bool = False) -> bool:
        result = await self._run(
            "SET", "REDIS.SET", {"key": key}, lambda c: c.set(key, value, ex=ttl, nx=nx)
        )
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._run(
            "DELETE", "REDIS.DEL", {"keys": list(keys)}, lambda c: c.delete(*keys)
        )

    async def scan_keys(self, pattern: str) -> list[str]:
        async def scan(client: redis.Redis) -> list[str]:
            return [key async for key in client.scan_iter(match=pattern, count=SCAN_BATCH_SIZE)]

        return await self._run("SCAN", "REDIS.SCAN", {"pattern": pattern}, scan)

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        result = await self._run(
            "EVAL",
            "REDIS.EVAL",
            {"key": key},
            lambda c: c.eval(LUA_COMPARE_AND_DELETE, 1, key, expected),
        )
        return int(result) == 1

    async def info(self, section: str | None = None) -> dict[str, Any]:
        return await self._run(
            "INFO", "REDIS.INFO", {"section": section}, lambda c: c.info(section)
        )

    async def dbsize(self) -> int:
        return await self._run("DBSIZE", "REDIS.DBSIZE", {}, lambda c: c.dbsize())


# =============================================================================
# LAYER 3: PUBLIC API
# Clean interface that coordinates all layers
# =============================================================================


class RedisClient:
    """
    Async Redis client implementing the KeyValueStore protocol.

    Usage:
        client = RedisClient()
        await client.connect()

        await client.set("key", "value", ttl=60)
        value = await client.get("key")

        await client.disconnect()

    Architecture:
        RedisClient (this class)
            ├── ConnectionManager (connection lifecycle)
            ├── ConnectionHealth (reachability)
            └── OperationExecutor (command execution)
    """

    def __init__(self, settings: RedisSettings | None = None):
        """
        Initialize Redis client. No network I/O happens here.

        STAGE-REDIS.1: Client initialization
        """
        self._settings = settings or get_settings().redis
        self._health = ConnectionHealth(reconnect_cooldown=self._settings.REDIS_RECONNECT_COOLDOWN)
        self._conn_mgr = ConnectionManager(self._settings, self._health)
        self._executor = OperationExecutor(self._conn_mgr, self._health)

        logger.info(
            "Redis client initialized",
            stage="REDIS.1",
            host=self._settings.REDIS_HOST,
            port=self._settings.REDIS_PORT,
        )

    @property
    def health(self) -> ConnectionHealth:
        return self._health

    async def connect(self) -> None:
        """
        Establish connection to Redis.

        Raises:
            CacheConnectionError: If connection fails
        """
        await self._conn_mgr.connect()

    async def disconnect(self) -> None:
        await self._conn_mgr.disconnect()

    async def safe_disconnect(self) -> None:
        """Disconnect without raising and without scheduling a reconnect."""
        try:
            await self._conn_mgr.disconnect()
            logger.info("Redis client safely disconnected", stage="REDIS.3")
        except Exception as e:
            logger.debug("Redis disconnect error (non-critical)", stage="REDIS.3", error=str(e))

    async def ping(self) -> bool:
        return await self._executor.ping()

    async def is_available(self) -> bool:
        """
        Health-gated liveness check.

        STAGE-REDIS.HEALTH: Availability check

        - Known down, cooldown running → False without I/O
        - Known down, cooldown elapsed → one reconnect attempt
        - Connected → PING must answer
        """
        if not self._health.is_connected:
            if not self._health.should_attempt_reconnect():
                return False
            try:
                await self._conn_mgr.connect()
            except CacheConnectionError:
                return False
            return True
        return await self._executor.ping()

    # -------------------------------------------------------------------------
    # Delegate to OperationExecutor
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Get value from Redis."""
        return await self._executor.get(key)

    async def set(self, key: str, value: str, ttl: int | None = None, nx: bool = False) -> bool:
        """Set value in Redis (SET key value [EX ttl] [NX])."""
        return await self._executor.set(key, value, ttl, nx)

    async def delete(self, *keys: str) -> int:
        """Delete keys from Redis."""
        return await self._executor.delete(*keys)

    async def scan_keys(self, pattern: str) -> list[str]:
        """Enumerate keys matching a glob pattern with SCAN."""
        return await self._executor.scan_keys(pattern)

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Atomically delete ``key`` if it still holds ``expected``."""
        return await self._executor.compare_and_delete(key, expected)

    async def info(self, section: str | None = None) -> dict[str, Any]:
        return await self._executor.info(section)

    async def dbsize(self) -> int:
        return await self._executor.dbsize()

    async def health_check(self) -> dict[str, Any]:
        """
        Perform health check on the Redis connection.

        Returns:
            Dict with health status, connection state and ping latency
        """
        health = {
            "status": "healthy",
            "host": self._settings.REDIS_HOST,
            "port": self._settings.REDIS_PORT,
            **self._health.snapshot(),
            "ping_latency_ms": None,
        }

        start = time.perf_counter()
        if await self.ping():
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        else:
            health["status"] = "unhealthy"
            health.update(self._health.snapshot())

        return health
