"""
Distributed Lock on Redis SET NX

Mutual exclusion for a named resource across every process sharing the store.

Lock key lifecycle:
    absent ──SET NX EX──► held(token) ──compare-and-delete / TTL──► absent

- Acquire: SET lock:<resource> <token> EX <ttl> NX, polled with 10-30ms jitter
  until it succeeds or the wait budget is spent
- Release: Lua compare-and-delete, so a holder whose lock already expired can
  never delete the next holder's lock
- Store failures never escape: acquire returns None, release returns False
"""

import asyncio
import random
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from stampede_cache.core.config.constants import LOCK_RETRY_MAX_DELAY, LOCK_RETRY_MIN_DELAY
from stampede_cache.core.exceptions import CacheError
from stampede_cache.core.interfaces.store import KeyValueStore
from stampede_cache.core.logging.logger import get_logger
from stampede_cache.infrastructure.cache.cache_keys import lock_key
from stampede_cache.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


def new_lock_token() -> str:
    """Opaque token unique per acquisition attempt."""
    return f"{time.time_ns()}-{uuid.uuid4().hex}"


class DistributedLock:
    """
    Token-based distributed lock.

    STAGE-LOCK: Distributed locking

    Usage:
        lock = DistributedLock(redis_client)

        token = await lock.acquire("fetch:entity_id:42", ttl_seconds=30, max_wait_ms=5000)
        if token:
            try:
                ...
            finally:
                await lock.release("fetch:entity_id:42", token)

        # Or
        async with lock.locked("report:daily", ttl_seconds=60) as token:
            if token:
                ...
    """

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._metrics = get_metrics_collector()

    async def acquire(self, resource: str, ttl_seconds: int, max_wait_ms: int) -> str | None:
        """
        Acquire the lock on ``resource``.

        STAGE-LOCK.1: Acquisition loop

        At least one SET NX attempt is made even with a zero wait budget.

        Args:
            resource: Logical resource name (stored under ``lock:<resource>``)
            ttl_seconds: Lock expiry, the backstop for a crashed holder
            max_wait_ms: Total time budget for polling

        Returns:
            The token on success, None on timeout or store failure
        """
        key = lock_key(resource)
        token = new_lock_token()
        start = time.monotonic()
        deadline = start + max(0, max_wait_ms) / 1000
        attempts = 0

        while True:
            attempts += 1
            try:
                acquired = await self._store.set(key, token, ttl=ttl_seconds, nx=True)
            except CacheError as e:
                waited = time.monotonic() - start
                self._metrics.record_lock_acquisition("error", waited)
                logger.warning(
                    "Lock acquisition aborted by store error",
                    stage="LOCK.1",
                    lock_key=key,
                    attempts=attempts,
                    error=str(e),
                )
                return None

            if acquired:
                waited = time.monotonic() - start
                self._metrics.record_lock_acquisition("acquired", waited)
                logger.debug(
                    "Lock acquired",
                    stage="LOCK.1",
                    lock_key=key,
                    attempts=attempts,
                    wait_ms=round(waited * 1000, 2),
                )
                return token

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(random.uniform(LOCK_RETRY_MIN_DELAY, LOCK_RETRY_MAX_DELAY), remaining))

        waited = time.monotonic() - start
        self._metrics.record_lock_acquisition("timeout", waited)
        logger.debug(
            "Lock wait budget exhausted",
            stage="LOCK.1",
            lock_key=key,
            attempts=attempts,
            max_wait_ms=max_wait_ms,
        )
        return None

    async def release(self, resource: str, token: str) -> bool:
        """
        Release the lock if ``token`` still owns it.

        STAGE-LOCK.2: Ownership-checked release

        Returns:
            True only when this call deleted the key
        """
        key = lock_key(resource)
        try:
            released = await self._store.compare_and_delete(key, token)
        except CacheError as e:
            self._metrics.record_lock_release("error")
            logger.warning("Lock release failed", stage="LOCK.2", lock_key=key, error=str(e))
            return False

        if released:
            self._metrics.record_lock_release("released")
            logger.debug("Lock released", stage="LOCK.2", lock_key=key)
        else:
            # Expired, or already re-acquired by another holder
            self._metrics.record_lock_release("not_owner")
            logger.debug("Lock not owned at release", stage="LOCK.2", lock_key=key)
        return released

    @asynccontextmanager
    async def locked(
        self,
        resource: str,
        ttl_seconds: int,
        max_wait_ms: int = 0,
    ) -> AsyncIterator[str | None]:
        """
        Hold the lock for the duration of the block.

        Yields the token, or None when the lock was not obtained; the caller
        decides what to do without it.
        """
        token = await self.acquire(resource, ttl_seconds, max_wait_ms)
        try:
            yield token
        finally:
            if token is not None:
                await self.release(resource, token)
