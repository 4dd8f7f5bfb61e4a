"""
Redis Connection Health Tracking

A small state machine that answers "is the store reachable right now?" without
a network round-trip, so a known-down store costs nothing on the read path.

States:
    DISCONNECTED → CONNECTING → CONNECTED
         ↑             ↓            ↓
         └──────── ERROR ←──────────┘

Writers: the RedisClient lifecycle hooks (on_connecting / on_ready / on_error /
on_close). Readers: anything deciding whether to skip the cache. All writers
run on the event loop, so a plain attribute is sufficient.

Log policy: a refused store must not flood the log. Errors are logged at
error level on the first connection attempt and when leaving CONNECTED; every
repeat while already down is logged at debug.
"""

import time

from stampede_cache.core.config.constants import ConnectionState
from stampede_cache.core.logging.logger import get_logger

logger = get_logger(__name__)


class ConnectionHealth:
    """
    Tracks Redis reachability.

    Args:
        reconnect_cooldown: Seconds after a failure before a reconnect probe is allowed
    """

    def __init__(self, reconnect_cooldown: float = 30.0):
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_cooldown = reconnect_cooldown
        self._connection_attempted = False
        self._last_failure_at: float | None = None
        self._last_error: str | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def last_error(self) -> str | None:
        return self._last_error

    # -------------------------------------------------------------------------
    # Lifecycle hooks
    # -------------------------------------------------------------------------

    def on_connecting(self) -> None:
        """Handshake started."""
        if not self._connection_attempted:
            logger.info("Redis client connecting", stage="HEALTH.1")
            self._connection_attempted = True
        self._state = ConnectionState.CONNECTING

    def on_ready(self) -> None:
        """Handshake verified (PING answered)."""
        was_connected = self.is_connected
        self._state = ConnectionState.CONNECTED
        self._last_failure_at = None
        self._last_error = None
        if not was_connected:
            logger.info("Redis client connected and ready", stage="HEALTH.2")

    def on_error(self, error: BaseException | str) -> None:
        """A handshake or command failed at the connection level."""
        message = str(error)
        first_attempt = self._state == ConnectionState.CONNECTING and self._last_failure_at is None
        if self.is_connected or first_attempt:
            logger.error("Redis client error", stage="HEALTH.3", error=message)
        else:
            logger.debug("Redis still unavailable", stage="HEALTH.3", error=message)

        self._state = ConnectionState.ERROR
        self._last_failure_at = time.monotonic()
        self._last_error = message

    def on_close(self) -> None:
        """Connection closed (explicitly or by the server)."""
        if self.is_connected:
            logger.warning("Redis client connection closed", stage="HEALTH.4")
        if self._state != ConnectionState.ERROR:
            self._state = ConnectionState.DISCONNECTED

    # -------------------------------------------------------------------------
    # Reconnect policy
    # -------------------------------------------------------------------------

    def should_attempt_reconnect(self) -> bool:
        """
        Whether the next health check may try one reconnect.

        Never connected → yes (lazy connect). Failed → only once the cooldown
        since the last failure has elapsed. Connected or connecting → no.
        """
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return False
        if self._last_failure_at is None:
            return not self._connection_attempted
        return time.monotonic() - self._last_failure_at >= self._reconnect_cooldown

    def snapshot(self) -> dict:
        return {
            "state": self._state.value,
            "connected": self.is_connected,
            "last_error": self._last_error,
        }
