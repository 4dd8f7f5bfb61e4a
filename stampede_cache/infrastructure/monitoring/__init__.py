"""
Monitoring Module

Prometheus metrics and cache health checks.
"""

from .health_checker import CacheHealthChecker, HealthStatus
from .metrics_collector import MetricsCollector, get_metrics_collector, get_metrics_text

__all__ = [
    "CacheHealthChecker",
    "HealthStatus",
    "MetricsCollector",
    "get_metrics_collector",
    "get_metrics_text",
]
