#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Prometheus-compatible metrics for the cache and admission-control layer:
- Cache operations by operation, result and tier
- Cache operation latency histograms
- Background refresh outcomes
- Rate limit decisions by path (remote, fallback, fail_open)
- Warm run outcomes
- Remote tier health

Architectural Decision: prometheus-client for industry-standard metrics
- Compatible with Grafana dashboards
- Efficient storage and aggregation
- Histogram buckets for latency percentiles

Author: Senior Solution Architect
Date: 2025-12-05
"""


from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from campus_cache.core.config.settings import Settings, get_settings
from campus_cache.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

APP_INFO = Info('campus_cache_app', 'Cache layer build information')

# Cache metrics
CACHE_OPERATIONS = Counter(
    'campus_cache_operations_total',
    'Total cache operations',
    ['operation', 'result', 'tier']
)

CACHE_OPERATION_DURATION = Histogram(
    'campus_cache_operation_duration_seconds',
    'Cache operation duration in seconds',
    ['operation'],
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)
)

BACKGROUND_REFRESHES = Counter(
    'campus_cache_background_refresh_total',
    'Stale-while-revalidate refreshes by status',
    ['status']  # succeeded, failed, dropped
)

# Remote tier metrics
REMOTE_HEALTH = Gauge(
    'campus_cache_remote_healthy',
    'Remote tier health (1=healthy, 0=unhealthy or disabled)'
)

REMOTE_RETRIES = Counter(
    'campus_cache_remote_retries_total',
    'Remote operation retries',
    ['operation']
)

# Rate limiting metrics
RATE_LIMIT_DECISIONS = Counter(
    'campus_cache_rate_limit_decisions_total',
    'Rate limit decisions',
    ['outcome', 'path']  # allowed/rejected x remote/fallback/fail_open
)

# Warming metrics
WARM_RUNS = Counter(
    'campus_cache_warm_runs_total',
    'Cache warm runs by status',
    ['status']  # completed, timed_out, skipped
)

WARM_KEYS = Counter(
    'campus_cache_warm_keys_total',
    'Cache warm candidates by outcome',
    ['outcome']  # warmed, skipped, failed
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_cache_operation("GET", "HIT", "local", 0.0002)
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_operation(
        self, operation: str, result: str, tier: str, duration_seconds: float
    ) -> None:
        CACHE_OPERATIONS.labels(operation=operation, result=result, tier=tier).inc()
        CACHE_OPERATION_DURATION.labels(operation=operation).observe(duration_seconds)

    def record_background_refresh(self, status: str) -> None:
        BACKGROUND_REFRESHES.labels(status=status).inc()

    # =========================================================================
    # Remote Tier Metrics
    # =========================================================================

    def set_remote_health(self, healthy: bool) -> None:
        REMOTE_HEALTH.set(1 if healthy else 0)

    def record_remote_retry(self, operation: str) -> None:
        REMOTE_RETRIES.labels(operation=operation).inc()

    # =========================================================================
    # Rate Limit Metrics
    # =========================================================================

    def record_rate_limit_decision(self, allowed: bool, path: str) -> None:
        RATE_LIMIT_DECISIONS.labels(outcome="allowed" if allowed else "rejected", path=path).inc()

    # =========================================================================
    # Warming Metrics
    # =========================================================================

    def record_warm_run(self, status: str) -> None:
        WARM_RUNS.labels(status=status).inc()

    def record_warm_keys(self, warmed: int, skipped: int, failed: int) -> None:
        WARM_KEYS.labels(outcome="warmed").inc(warmed)
        WARM_KEYS.labels(outcome="skipped").inc(skipped)
        WARM_KEYS.labels(outcome="failed").inc(failed)

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
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
