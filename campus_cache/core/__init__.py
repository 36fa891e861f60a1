"""
Core Module

Foundational components: configuration, logging, exceptions and the
Outcome type shared by the remote tier.
"""

from .exceptions import (
    CacheError,
    CacheSerializationError,
    CacheWarmingError,
    CampusCacheError,
    ConfigurationError,
    RateLimitBackendError,
    RateLimitError,
    RateLimitExceededError,
)
from .logging import (
    clear_request_id,
    get_logger,
    get_request_id,
    log_stage,
    set_request_id,
    setup_logging,
)
from .outcome import Outcome, OutcomeStatus

__all__ = [
    "CacheError",
    "CacheSerializationError",
    "CacheWarmingError",
    "CampusCacheError",
    "ConfigurationError",
    "RateLimitBackendError",
    "RateLimitError",
    "RateLimitExceededError",
    "clear_request_id",
    "get_logger",
    "get_request_id",
    "log_stage",
    "set_request_id",
    "setup_logging",
    "Outcome",
    "OutcomeStatus",
]
