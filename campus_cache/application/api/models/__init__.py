"""Pydantic models for API request/response validation."""

from campus_cache.application.api.models.cache import (
    CacheMonitorResponse,
    CacheStatusResponse,
    InvalidateRequest,
    InvalidateResponse,
    KeyStats,
    PatternStats,
    TierCounts,
    WarmResponse,
)

__all__ = [
    "CacheMonitorResponse",
    "CacheStatusResponse",
    "InvalidateRequest",
    "InvalidateResponse",
    "KeyStats",
    "PatternStats",
    "TierCounts",
    "WarmResponse",
]
