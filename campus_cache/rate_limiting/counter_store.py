"""
Atomic Counter Stores

Fixed-window fallback used by the rate limiter when the remote tier is not
available. The store owns the compare-and-increment; the limiter only calls
check_and_increment and interprets the decision.

Implementations:
- RpcCounterStore: adapts a durable-store RPC (check_rate_limit) that runs
  the increment-or-reset in one server-side transaction
- LocalCounterStore: in-process fixed window guarded by an asyncio.Lock, for
  single-process deployments and development
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from campus_cache.core.config.constants import Stage
from campus_cache.core.exceptions import RateLimitBackendError
from campus_cache.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CounterDecision:
    allowed: bool
    remaining: int
    reset_time: float  # epoch seconds


@runtime_checkable
class AtomicCounterStore(Protocol):
    async def check_and_increment(
        self,
        identifier: str,
        window_seconds: int,
        max_requests: int,
        endpoint: str = "",
    ) -> CounterDecision:
        """
        Atomically increment the counter for (identifier, endpoint, window),
        starting a new window when the previous one has ended.

        Raises:
            RateLimitBackendError: the durable store could not be reached
        """
        ...


RpcCall = Callable[[str, dict[str, Any]], Awaitable[Any]]


def _parse_reset_time(value: Any) -> float:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, (int, float)):
        return float(value)
    elif isinstance(value, str):
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise RateLimitBackendError(
            "Unrecognized reset_time in rate limit RPC response",
            details={"reset_time": repr(value)},
        )
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


class RpcCounterStore:
    """
    Calls the durable store's check_rate_limit function.

    ``call(name, params)`` is the host application's RPC client. It returns
    the function's rows: a list of mappings (or a single mapping) with
    allowed, remaining and reset_time.
    """

    FUNCTION_NAME = "check_rate_limit"

    def __init__(self, call: RpcCall, function_name: str = FUNCTION_NAME):
        self._call = call
        self._function_name = function_name

    async def check_and_increment(
        self,
        identifier: str,
        window_seconds: int,
        max_requests: int,
        endpoint: str = "",
    ) -> CounterDecision:
        params = {
            "p_identifier": identifier,
            "p_endpoint": endpoint,
            "p_window_seconds": window_seconds,
            "p_max_requests": max_requests,
        }
        try:
            rows = await self._call(self._function_name, params)
        except RateLimitBackendError:
            raise
        except Exception as e:
            raise RateLimitBackendError.from_exception(
                e, message="Rate limit RPC failed", identifier=identifier, endpoint=endpoint
            )

        row = rows[0] if isinstance(rows, list) and rows else rows
        if not row:
            raise RateLimitBackendError(
                "Rate limit RPC returned no rows",
                details={"identifier": identifier, "endpoint": endpoint},
            )

        try:
            return CounterDecision(
                allowed=bool(row["allowed"]),
                remaining=max(0, int(row["remaining"])),
                reset_time=_parse_reset_time(row["reset_time"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RateLimitBackendError.from_exception(
                e, message="Malformed rate limit RPC response", identifier=identifier
            )


@dataclass
class _WindowRow:
    count: int
    reset_time: float


class LocalCounterStore:
    """
    In-process fixed-window counter.

    One row per (identifier, endpoint, window). A row whose reset_time has
    passed restarts at 1 with a fresh window.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._rows: dict[tuple[str, str, int], _WindowRow] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def check_and_increment(
        self,
        identifier: str,
        window_seconds: int,
        max_requests: int,
        endpoint: str = "",
    ) -> CounterDecision:
        async with self._lock:
            now = self._clock()
            key = (identifier, endpoint, window_seconds)
            row = self._rows.get(key)

            if row is None or row.reset_time < now:
                row = _WindowRow(count=1, reset_time=now + window_seconds)
                self._rows[key] = row
            else:
                row.count += 1

            return CounterDecision(
                allowed=row.count <= max_requests,
                remaining=max(0, max_requests - row.count),
                reset_time=row.reset_time,
            )

    async def cleanup_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            expired = [key for key, row in self._rows.items() if row.reset_time < now]
            for key in expired:
                del self._rows[key]
        if expired:
            logger.debug("Expired rate limit windows removed",
                         stage=Stage.RATE_LIMIT_FALLBACK.value, removed=len(expired))
        return len(expired)

    async def clear(self) -> None:
        async with self._lock:
            self._rows.clear()
