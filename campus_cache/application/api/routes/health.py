"""
Health Check Routes
===================

GET /health reports the cache layer's status for load balancers and
monitoring:

- 200 with status "healthy": both tiers usable
- 200 with status "degraded": remote tier disabled or failing; the service
  still answers from the local tier and the fallback rate limit path

The cache layer never makes the process unhealthy on its own, so this
endpoint does not return 503.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from campus_cache.application.api.dependencies import CacheServiceDep

router = APIRouter(prefix="/health", tags=["Health"])


class HealthResponse(BaseModel):
    status: str  # "healthy" | "degraded"
    timestamp: str
    components: dict | None = None


@router.get("", response_model=HealthResponse)
async def health_check(service: CacheServiceDep):
    """Service status with remote tier health and execution mode."""
    health = await service.cache.health_check()
    components = {
        "execution_mode": health["execution_mode"],
        "local": health["local"],
        "remote": health["remote"],
        "warming": {
            "enabled": service.scheduler is not None,
            "running": bool(service.scheduler and service.scheduler.running),
        },
    }
    return HealthResponse(
        status=health["status"],
        timestamp=datetime.now(timezone.utc).isoformat(),
        components=components,
    )
