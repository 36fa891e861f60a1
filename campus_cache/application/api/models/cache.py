"""
Cache API Models
================

Request/response models for the cache monitor, status, warm and invalidate
endpoints.
"""

from typing import Any

from pydantic import BaseModel, Field, model_validator


class TierCounts(BaseModel):
    hits: int = Field(0, ge=0)
    misses: int = Field(0, ge=0)


class KeyStats(BaseModel):
    key: str
    hits: int = Field(..., ge=0)
    misses: int = Field(..., ge=0)
    hit_rate: float = Field(..., ge=0, le=100)


class CacheMonitorResponse(BaseModel):
    """Response of GET /admin/cache-monitor."""

    timestamp: str
    hit_rate: float = Field(..., ge=0, le=100, description="hits / (hits + misses) x 100")
    total_hits: int
    total_misses: int
    stale_hits: int
    remote_available: bool
    execution_mode: str
    by_tier: dict[str, TierCounts]
    top_keys: list[KeyStats] = Field(default_factory=list, description="Top 20 keys by lookups")
    stats: dict[str, Any] = Field(default_factory=dict)


class PatternStats(BaseModel):
    count: int = 0
    hits: int = 0
    misses: int = 0
    avg_duration_ms: float = 0.0


class CacheStatusResponse(BaseModel):
    """Response of GET /cache/status."""

    remote: dict[str, Any]
    cache: dict[str, Any]
    operations: list[dict[str, Any]]
    by_pattern: dict[str, PatternStats]


class InvalidateRequest(BaseModel):
    """Exactly one of ``key`` or ``pattern`` (glob, e.g. ``school:*``)."""

    key: str | None = Field(None, min_length=1)
    pattern: str | None = Field(None, min_length=1)
    include_stale: bool = Field(False, description="Also drop the key's stale copy")

    @model_validator(mode="after")
    def exactly_one_target(self) -> "InvalidateRequest":
        if (self.key is None) == (self.pattern is None):
            raise ValueError("Provide exactly one of 'key' or 'pattern'")
        return self


class InvalidateResponse(BaseModel):
    invalidated: str
    local_removed: int | None = None


class WarmResponse(BaseModel):
    warmed: int
    skipped: int
    failed: int
    duration_ms: float
    timed_out: bool
    failed_keys: list[str] = Field(default_factory=list)
