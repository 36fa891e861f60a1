"""
Base Exception Class

Root of the campus_cache error hierarchy. Cache errors live in cache.py,
admission-control errors in rate_limit.py.

Author: System Architect
Date: 2025-12-08
"""

from typing import Any


class CampusCacheError(Exception):
    """
    Base exception for all caching and admission-control errors.

    Attributes:
        message: Error message
        details: Additional error details (dict)

    Example:
        raise CacheSerializationError(
            "Value is not JSON serializable",
            details={"key": "school:42", "value_type": "Decimal"}
        )
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = dict(details or {})
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize for structured logs and JSON error bodies.

        Returns:
            Dict with error_type, message and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

    def with_context(self, **context) -> "CampusCacheError":
        """
        Merge extra fields (key, preset, identifier) into details.

        Returns:
            Self (for method chaining)
        """
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        return f"{self.__class__.__name__}(message='{self.message}'{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        **details
    ) -> "CampusCacheError":
        """
        Create an error from another exception.

        Used to wrap RPC and orjson errors while keeping their type and text.

        Example:
            >>> try:
            ...     orjson.dumps(value)
            ... except TypeError as e:
            ...     raise CacheSerializationError.from_exception(e, key="school:42")
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, details=error_details)


# Raised at construction time, never from a cache or limiter call
class ConfigurationError(CampusCacheError):
    """Settings are missing or inconsistent (e.g. Redis enabled without REDIS_URL)."""
    pass
