"""
Rate Limiting Module

Sliding-window rate limiting over the remote tier with an atomic counter
store fallback.
"""

from .counter_store import AtomicCounterStore, CounterDecision, LocalCounterStore, RpcCounterStore
from .identifiers import get_request_identifier
from .rate_limiter import RateLimiter, RateLimitResult, create_rate_limit_headers

__all__ = [
    "AtomicCounterStore",
    "CounterDecision",
    "LocalCounterStore",
    "RateLimitResult",
    "RateLimiter",
    "RpcCounterStore",
    "create_rate_limit_headers",
    "get_request_identifier",
]
