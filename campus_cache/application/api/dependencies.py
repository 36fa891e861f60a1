"""
FastAPI Dependencies
====================

Reusable dependencies for the HTTP surface.

The CacheService is created once in the lifespan manager and stored on
``app.state.cache_service``. Route handlers receive it through
``CacheServiceDep`` instead of importing module globals, which keeps them
testable: a test app can carry a service built around an in-memory remote.

Admission control is a dependency as well:

    @router.get("/cache/status", dependencies=[Depends(RateLimitGuard("READ"))])
    async def cache_status(...):
        ...

The guard runs before the handler. Admitted responses carry X-RateLimit-*
headers; a rejected request never reaches the handler and raises
RateLimitExceededError, which the app turns into a 429 with Retry-After.
"""

from typing import Annotated

from fastapi import Depends, Request, Response

from campus_cache.core.config.settings import RateLimitPreset, Settings, get_settings
from campus_cache.core.exceptions import RateLimitExceededError
from campus_cache.rate_limiting.identifiers import get_request_identifier
from campus_cache.rate_limiting.rate_limiter import RateLimitResult, create_rate_limit_headers
from campus_cache.service import CacheService, get_cache_service as get_default_service

# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_cache_service(request: Request) -> CacheService:
    """
    Retrieve the CacheService from application state.

    Apps whose lifespan did not run (e.g. a TestClient used without a
    ``with`` block) fall back to the process default service.
    """
    service = getattr(request.app.state, "cache_service", None)
    if service is None:
        service = get_default_service()
        request.app.state.cache_service = service
    return service


class RateLimitGuard:
    """
    Dependency that admits or rejects a request against a rate limit preset.

    Args:
        preset: Preset name (AUTH, API, UPLOAD, READ, WRITE) or an explicit preset
        endpoint: Window scope; defaults to the request path
    """

    def __init__(self, preset: str | RateLimitPreset, endpoint: str | None = None):
        self.preset = preset
        self.endpoint = endpoint

    async def __call__(self, request: Request, response: Response) -> RateLimitResult:
        service = get_cache_service(request)
        result = await service.rate_limiter.check(
            get_request_identifier(request),
            self.preset,
            endpoint=self.endpoint if self.endpoint is not None else request.url.path,
        )
        if not result.success:
            raise RateLimitExceededError(
                f"Too many requests. Retry after {result.retry_after} seconds.",
                limit=result.limit,
                remaining=result.remaining,
                retry_after=result.retry_after,
                reset=result.reset,
            )
        response.headers.update(create_rate_limit_headers(result))
        request.state.rate_limit = result
        return result


# ============================================================================
# TYPE ALIASES
# ============================================================================

CacheServiceDep = Annotated[CacheService, Depends(get_cache_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
