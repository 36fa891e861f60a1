"""
Remote Cache Protocol

This module defines the protocol every remote tier implementation satisfies,
enabling the facade and the rate limiter to work against either a network
backed client or a disabled one chosen at construction time.

Architectural Decision: Protocol-based abstraction
- Two implementations: RedisRemoteCache and DisabledRemoteCache
- Facilitates testing with in-memory fakes
- Every data operation returns an Outcome, never raises

Author: System Architect
Date: 2025-12-08
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from campus_cache.core.config.constants import HealthStatus
from campus_cache.core.outcome import Outcome


@dataclass
class RemoteHealth:
    """Cached health of the remote tier."""

    status: HealthStatus = HealthStatus.UNKNOWN
    last_check: float | None = None
    latency_ms: float | None = None
    last_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "last_check": self.last_check,
            "latency_ms": self.latency_ms,
            "last_error": self.last_error,
        }


@runtime_checkable
class RemoteCache(Protocol):
    """
    Protocol defining the remote key-value tier.

    Values are strings (serialized payloads); TTLs are in seconds.
    """

    @property
    def health(self) -> RemoteHealth:
        ...

    def is_available(self) -> bool:
        """True when the tier is configured and enabled for this process."""
        ...

    async def get(self, key: str) -> Outcome[str]:
        ...

    async def set(self, key: str, value: str, ttl: float | None = None) -> Outcome[bool]:
        ...

    async def delete(self, *keys: str) -> Outcome[int]:
        ...

    async def exists(self, key: str) -> Outcome[bool]:
        ...

    async def expire(self, key: str, seconds: int) -> Outcome[bool]:
        ...

    async def incr(self, key: str) -> Outcome[int]:
        ...

    async def incr_with_expiry(self, key: str, seconds: int) -> Outcome[int]:
        """Increment and set the expiry when the key was just created."""
        ...

    async def zadd(self, key: str, mapping: dict[str, float]) -> Outcome[int]:
        ...

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> Outcome[int]:
        ...

    async def zcard(self, key: str) -> Outcome[int]:
        ...

    async def zrange(
        self, key: str, start: int, stop: int, withscores: bool = False
    ) -> Outcome[list]:
        ...

    async def delete_pattern(self, pattern: str) -> Outcome[int]:
        """Delete every key matching a glob pattern."""
        ...

    async def probe(self) -> RemoteHealth:
        """Active round trip (set, get, delete) that refreshes the health status."""
        ...

    async def start_health_checks(self) -> None:
        ...

    async def stop_health_checks(self) -> None:
        ...

    async def close(self) -> None:
        ...
