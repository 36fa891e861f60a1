"""
Cache Status Route
==================

GET /cache/status: remote tier availability and health, facade statistics,
the last 100 operations and a per-key-pattern breakdown. Rate limited with
the READ preset.
"""

from fastapi import APIRouter, Depends

from campus_cache.application.api.dependencies import CacheServiceDep, RateLimitGuard
from campus_cache.application.api.models.cache import CacheStatusResponse, PatternStats
from campus_cache.infrastructure.cache.operation_log import key_prefix

router = APIRouter(prefix="/cache", tags=["Cache"])

RECENT_OPERATIONS = 100


def _by_pattern(operations: list[dict]) -> dict[str, PatternStats]:
    grouped: dict[str, dict] = {}
    for op in operations:
        stats = grouped.setdefault(key_prefix(op["key"]), {"count": 0, "hits": 0, "misses": 0, "total": 0.0})
        stats["count"] += 1
        stats["total"] += op["duration_ms"]
        if op["result"] == "HIT":
            stats["hits"] += 1
        elif op["result"] == "MISS":
            stats["misses"] += 1

    return {
        pattern: PatternStats(
            count=s["count"],
            hits=s["hits"],
            misses=s["misses"],
            avg_duration_ms=round(s["total"] / s["count"], 3),
        )
        for pattern, s in grouped.items()
    }


@router.get(
    "/status",
    response_model=CacheStatusResponse,
    dependencies=[Depends(RateLimitGuard("READ"))],
)
async def cache_status(service: CacheServiceDep):
    operations = service.cache.get_cache_operations(RECENT_OPERATIONS)
    remote = service.remote
    return CacheStatusResponse(
        remote={"available": remote.is_available(), **remote.health.to_dict()},
        cache=service.cache.get_cache_stats(),
        operations=operations,
        by_pattern=_by_pattern(operations),
    )
