"""
Unit Tests for Core Exceptions

Tests the exception hierarchy and its serialization helpers.
"""

import pytest

from campus_cache.core.exceptions import (
    CacheError,
    CacheSerializationError,
    CacheWarmingError,
    CampusCacheError,
    ConfigurationError,
    RateLimitBackendError,
    RateLimitError,
    RateLimitExceededError,
)


@pytest.mark.unit
class TestCampusCacheError:
    """Test the base exception class."""

    def test_base_error_creation(self):
        """Test that the base error carries its message."""
        error = CampusCacheError("Test message")
        assert str(error) == "Test message"
        assert error.details == {}

    def test_details_are_copied(self):
        """Test that mutating the caller's dict does not leak into the error."""
        details = {"key": "school:1"}
        error = CampusCacheError("Test", details=details)
        details["key"] = "changed"

        assert error.details == {"key": "school:1"}

    def test_to_dict(self):
        """Test dictionary form used for logs and API responses."""
        error = CacheSerializationError("bad value", details={"key": "k"})

        assert error.to_dict() == {
            "error_type": "CacheSerializationError",
            "message": "bad value",
            "details": {"key": "k"},
        }

    def test_with_context_chains(self):
        """Test that with_context adds details and returns the same error."""
        error = CacheError("boom")
        assert error.with_context(key="school:1") is error
        assert error.details["key"] == "school:1"

    def test_from_exception_wraps_original(self):
        """Test wrapping a third-party exception with context."""
        original = TypeError("Type is not JSON serializable: Decimal")

        error = CacheSerializationError.from_exception(original, key="school:42")

        assert isinstance(error, CacheSerializationError)
        assert error.message == str(original)
        assert error.details["original_error"] == "TypeError"
        assert error.details["key"] == "school:42"

    def test_repr_includes_details(self):
        error = ConfigurationError("missing", details={"field": "REDIS_URL"})
        assert "ConfigurationError" in repr(error)
        assert "REDIS_URL" in repr(error)


@pytest.mark.unit
class TestHierarchy:
    """Test inheritance relationships."""

    @pytest.mark.parametrize(
        "error_class, parent",
        [
            (CacheSerializationError, CacheError),
            (CacheWarmingError, CacheError),
            (RateLimitExceededError, RateLimitError),
            (RateLimitBackendError, RateLimitError),
            (CacheError, CampusCacheError),
            (RateLimitError, CampusCacheError),
            (ConfigurationError, CampusCacheError),
        ],
    )
    def test_inheritance(self, error_class, parent):
        assert issubclass(error_class, parent)


@pytest.mark.unit
class TestRateLimitExceededError:
    """Test the rate limit exceeded error."""

    def test_carries_limit_fields(self):
        error = RateLimitExceededError("Too many requests", limit=5, retry_after=12)

        assert error.limit == 5
        assert error.remaining == 0
        assert error.retry_after == 12
        assert error.details == {"limit": 5, "remaining": 0, "retry_after": 12}
