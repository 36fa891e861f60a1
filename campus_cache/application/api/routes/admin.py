"""
Admin Routes
============

Operational endpoints for the cache layer:

- GET  /admin/cache-monitor     hit rate, per-tier and top-key breakdown
- POST /admin/cache/warm        manual warm run (409 when skipped)
- POST /admin/cache/invalidate  drop one key or a glob pattern
- GET  /admin/metrics           Prometheus exposition

Authentication is the host application's concern; mount this router behind
its admin guard.
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, HTTPException, Response, status

from campus_cache.application.api.dependencies import CacheServiceDep
from campus_cache.application.api.models.cache import (
    CacheMonitorResponse,
    InvalidateRequest,
    InvalidateResponse,
    KeyStats,
    TierCounts,
    WarmResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

TOP_KEYS = 20


@router.get("/cache-monitor", response_model=CacheMonitorResponse)
async def cache_monitor(service: CacheServiceDep):
    """Hit rate over the operation log with the 20 most looked-up keys."""
    report = service.cache.get_cache_hit_rate()
    stats = service.cache.get_cache_stats()

    ranked = sorted(
        report.by_key.items(),
        key=lambda item: item[1]["hits"] + item[1]["misses"],
        reverse=True,
    )
    top_keys = [
        KeyStats(key=key, hits=int(s["hits"]), misses=int(s["misses"]), hit_rate=s["hit_rate"])
        for key, s in ranked[:TOP_KEYS]
    ]

    logger.info("cache_monitor_accessed", hit_rate=round(report.hit_rate, 2))

    return CacheMonitorResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        hit_rate=round(report.hit_rate, 2),
        total_hits=report.hits,
        total_misses=report.misses,
        stale_hits=report.stale_hits,
        remote_available=stats["remote_available"],
        execution_mode=stats["execution_mode"],
        by_tier={tier: TierCounts(**counts) for tier, counts in report.by_tier.items()},
        top_keys=top_keys,
        stats=stats,
    )


@router.post("/cache/warm", response_model=WarmResponse)
async def warm_cache(service: CacheServiceDep):
    """
    Trigger a warm run now.

    Raises:
        HTTPException: 404 when warming is not configured, 409 when a run is
            in progress or the cooldown is active
    """
    if service.scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Cache warming is not configured",
        )

    report = await service.warm_now(reason="manual")
    if report is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cache warm run skipped (in progress or cooling down)",
        )
    return WarmResponse(**report.to_dict())


@router.post("/cache/invalidate", response_model=InvalidateResponse)
async def invalidate_cache(body: InvalidateRequest, service: CacheServiceDep):
    """Drop a key (optionally with its stale copy) or every key matching a pattern."""
    if body.pattern is not None:
        removed = await service.cache.invalidate_pattern(body.pattern)
        logger.info("cache_pattern_invalidated", pattern=body.pattern, local_removed=removed)
        return InvalidateResponse(invalidated=body.pattern, local_removed=removed)

    await service.cache.invalidate(body.key, include_stale=body.include_stale)
    logger.info("cache_key_invalidated", key=body.key, include_stale=body.include_stale)
    return InvalidateResponse(invalidated=body.key)


@router.get("/metrics")
async def get_prometheus_metrics(service: CacheServiceDep):
    """Prometheus text exposition of every campus_cache_* metric."""
    metrics = service.metrics
    return Response(content=metrics.get_prometheus_metrics(), media_type=metrics.get_content_type())
