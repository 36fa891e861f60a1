"""
Rate Limiting Exceptions

All exceptions related to rate limiting operations

Author: System Architect
Date: 2025-12-08
"""

from typing import Any

from campus_cache.core.exceptions.base import CampusCacheError


class RateLimitError(CampusCacheError):
    """Base exception for rate limiting errors."""
    pass


class RateLimitExceededError(RateLimitError):
    """
    Raised when rate limit is exceeded.

    Clients should wait ``retry_after`` seconds before retrying.

    The response should include:
    - X-RateLimit-Limit: Maximum requests allowed
    - X-RateLimit-Remaining: Requests remaining
    - X-RateLimit-Reset: Time when limit resets (Unix timestamp)
    - Retry-After: Seconds until the oldest admitted request leaves the window
    """

    def __init__(
        self,
        message: str,
        limit: int,
        remaining: int = 0,
        retry_after: int | None = None,
        reset: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details=details)
        self.limit = limit
        self.remaining = remaining
        self.retry_after = retry_after
        self.reset = reset
        self.details.update(limit=limit, remaining=remaining, retry_after=retry_after)


class RateLimitBackendError(RateLimitError):
    """
    Raised by an atomic counter store when the durable-store call fails.

    The limiter treats this as an infrastructure failure and fails open.
    """
    pass
