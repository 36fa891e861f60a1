#!/usr/bin/env python3
"""
FastAPI Application Entry Point

HTTP surface of the cache layer: health, cache monitor/status and admin
operations. The CacheService is built (or injected) in create_app and
started/stopped by the lifespan manager.

Author: Senior Solution Architect
Date: 2025-12-05
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from campus_cache.application.api.routes.admin import router as admin_router
from campus_cache.application.api.routes.cache import router as cache_router
from campus_cache.application.api.routes.health import router as health_router
from campus_cache.core.config.settings import get_settings
from campus_cache.core.exceptions import CampusCacheError, RateLimitExceededError
from campus_cache.core.logging.logger import (
    clear_request_id,
    get_logger,
    set_request_id,
    setup_logging,
)
from campus_cache.service import CacheService, get_cache_service

logger = get_logger(__name__)

HEADER_REQUEST_ID = "X-Request-ID"


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).
    """
    settings = get_settings()
    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting cache service",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    service: CacheService = getattr(app.state, "cache_service", None) or get_cache_service()
    app.state.cache_service = service

    try:
        await service.start()
        logger.info("Application startup complete")
        yield
    finally:
        logger.info("Shutting down application")
        await service.stop()
        logger.info("Application shutdown complete")


# ============================================================================
# Application Factory
# ============================================================================


def create_app(service: CacheService | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Pre-built CacheService; the process default is used otherwise

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Two-tier cache and rate limiting layer for the school dashboard",
        lifespan=lifespan,
    )
    if service is not None:
        app.state.cache_service = service

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Inject a request ID into every request for log correlation."""
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)
        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            clear_request_id()

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(request: Request, exc: RateLimitExceededError):
        headers = {"X-RateLimit-Limit": str(exc.limit), "X-RateLimit-Remaining": str(exc.remaining)}
        if exc.reset is not None:
            headers["X-RateLimit-Reset"] = str(exc.reset)
        if exc.retry_after is not None:
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": exc.message,
                "retry_after": exc.retry_after,
            },
            headers=headers,
        )

    @app.exception_handler(CampusCacheError)
    async def cache_error_handler(request: Request, exc: CampusCacheError):
        logger.error(f"Cache layer error: {exc.message}", error_type=type(exc).__name__)
        return JSONResponse(status_code=500, content=exc.to_dict())

    base_path = settings.app.API_PREFIX
    app.include_router(health_router, prefix=base_path)
    app.include_router(cache_router, prefix=base_path)
    app.include_router(admin_router, prefix=base_path)

    return app
