"""
Metrics Collector with Prometheus Integration

Cache-layer metrics:
- Cache lookups by result (hit, miss, bypass)
- Fetch executions by path (locked, fallback, degraded)
- Lock acquisitions and releases by outcome
- Lock wait time histogram
- Keys removed by invalidation

Architectural Decision: prometheus-client for industry-standard metrics
- Module-level metric objects registered once per process
- Thin collector facade so call sites never touch label plumbing

Author: System Architect
Date: 2026-10-19
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    Info,
    generate_latest,
)

from stampede_cache.core.config.settings import get_settings
from stampede_cache.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

CACHE_LOOKUPS = Counter(
    "stampede_cache_lookups_total",
    "Cache lookups by result",
    ["result"],  # hit, miss, bypass
)

FETCH_EXECUTIONS = Counter(
    "stampede_cache_fetch_executions_total",
    "Calls into the wrapped fetch function",
    ["path"],  # locked, fallback, degraded
)

LOCK_ACQUISITIONS = Counter(
    "stampede_cache_lock_acquisitions_total",
    "Distributed lock acquisition attempts by outcome",
    ["outcome"],  # acquired, timeout, error
)

LOCK_RELEASES = Counter(
    "stampede_cache_lock_releases_total",
    "Distributed lock releases by outcome",
    ["outcome"],  # released, not_owner, error
)

LOCK_WAIT = Histogram(
    "stampede_cache_lock_wait_seconds",
    "Time spent waiting in lock acquisition",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

INVALIDATED_KEYS = Counter(
    "stampede_cache_invalidated_keys_total",
    "Keys removed by pattern invalidation",
)

STORE_ERRORS = Counter(
    "stampede_cache_store_errors_total",
    "Store failures absorbed by the cache layer",
    ["operation"],
)

APP_INFO = Info(
    "stampede_cache_app",
    "Application information",
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_cache_lookup("hit")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        settings = get_settings()
        APP_INFO.info({
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "app_name": settings.app.APP_NAME,
        })
        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_lookup(self, result: str) -> None:
        CACHE_LOOKUPS.labels(result=result).inc()

    def record_fetch(self, path: str) -> None:
        FETCH_EXECUTIONS.labels(path=path).inc()

    def record_store_error(self, operation: str) -> None:
        STORE_ERRORS.labels(operation=operation).inc()

    def record_invalidated(self, count: int) -> None:
        if count > 0:
            INVALIDATED_KEYS.inc(count)

    # =========================================================================
    # Lock Metrics
    # =========================================================================

    def record_lock_acquisition(self, outcome: str, wait_seconds: float) -> None:
        """Record an acquisition outcome and how long the caller waited."""
        LOCK_ACQUISITIONS.labels(outcome=outcome).inc()
        LOCK_WAIT.observe(wait_seconds)

    def record_lock_release(self, outcome: str) -> None:
        LOCK_RELEASES.labels(outcome=outcome).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global metrics collector (metric objects are process-wide anyway)
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics_text() -> str:
    """Prometheus exposition text for every registered metric."""
    return get_metrics_collector().get_prometheus_metrics().decode("utf-8")
