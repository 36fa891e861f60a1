"""
Cache-Related Exceptions

Errors raised by the cache tiers and the warmer. Remote-tier failures are
normally absorbed into Outcome values; these exceptions mark the cases that
are surfaced to callers or logged as structured errors.

Author: System Architect
Date: 2025-12-08
"""

from campus_cache.core.exceptions.base import CampusCacheError


class CacheError(CampusCacheError):
    """Base exception for cache-related errors."""
    pass


class CacheSerializationError(CacheError):
    """
    Raised when a value cannot be serialized for storage, or a stored payload
    cannot be decoded.
    """
    pass


class CacheWarmingError(CacheError):
    """Raised when a warm plan cannot be resolved."""
    pass
