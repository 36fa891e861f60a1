"""
Rate Limiter

Sliding-window admission control shared by every inbound request.

Paths (first one that produces a decision wins):
1. remote: sorted set per (identifier, endpoint, window) in the remote tier,
   pruned on every check, one member per admitted request
2. fallback: an AtomicCounterStore fixed window, used when the remote tier is
   unavailable or one of its calls failed
3. fail open: the fallback raised (or none is configured); the request is
   admitted and a warning is logged

Limits come from named presets (AUTH, API, UPLOAD, READ, WRITE) configured
through RATE_LIMIT_PRESETS.
"""

import math
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from campus_cache.core.config.constants import Stage
from campus_cache.core.config.settings import RateLimitPreset, Settings, get_settings
from campus_cache.core.exceptions import RateLimitError
from campus_cache.core.interfaces.remote_cache import RemoteCache
from campus_cache.core.logging.logger import get_logger
from campus_cache.infrastructure.monitoring.metrics_collector import MetricsCollector
from campus_cache.rate_limiting.counter_store import AtomicCounterStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """
    Attributes:
        success: True when the request is admitted
        limit: Preset max_requests
        remaining: Requests left in the current window (never negative)
        reset: Epoch seconds when the window frees up
        retry_after: Seconds to wait, set only on rejection
    """
    success: bool
    limit: int
    remaining: int
    reset: int
    retry_after: int | None = None


class _PrimaryPathFailed(Exception):
    def __init__(self, step: str, error: str | None):
        super().__init__(f"{step}: {error}")
        self.step = step
        self.error = error


def window_key(identifier: str, endpoint: str, window_seconds: int) -> str:
    return f"ratelimit:{identifier}:{endpoint}:{window_seconds}"


class RateLimiter:
    """
    Usage:
        limiter = RateLimiter(remote, counter_store=LocalCounterStore())
        result = await limiter.check("user:42", "AUTH", endpoint="/login")
        if not result.success:
            ...  # 429 with create_rate_limit_headers(result)
    """

    def __init__(
        self,
        remote: RemoteCache,
        counter_store: AtomicCounterStore | None = None,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings or get_settings()
        self._remote = remote
        self._counter_store = counter_store
        self._metrics = metrics
        self._clock = clock
        self._presets = dict(self._settings.rate_limit.RATE_LIMIT_PRESETS)
        self._enabled = self._settings.rate_limit.RATE_LIMIT_ENABLED

    @property
    def presets(self) -> dict[str, RateLimitPreset]:
        return dict(self._presets)

    def resolve_preset(self, preset: str | RateLimitPreset) -> RateLimitPreset:
        if isinstance(preset, RateLimitPreset):
            return preset
        try:
            return self._presets[preset.upper()]
        except KeyError:
            raise RateLimitError(
                f"Unknown rate limit preset: {preset}",
                details={"preset": preset, "available": sorted(self._presets)},
            ) from None

    async def check(
        self, identifier: str, preset: str | RateLimitPreset, endpoint: str = ""
    ) -> RateLimitResult:
        """
        STAGE-RL: Admit or reject one request.

        Never raises for infrastructure failures.

        Raises:
            RateLimitError: preset name is not configured
        """
        limits = self.resolve_preset(preset)
        max_requests = limits.max_requests
        window = limits.window_seconds

        if not self._enabled:
            return RateLimitResult(True, max_requests, max_requests, int(self._clock()) + window)

        primary_error: str | None = None
        if self._remote.is_available():
            try:
                result = await self._check_remote(identifier, endpoint, max_requests, window)
            except _PrimaryPathFailed as e:
                primary_error = str(e)
                logger.warning(
                    "Rate limit remote path failed, using fallback",
                    stage=Stage.RATE_LIMIT.value,
                    identifier=identifier,
                    endpoint=endpoint,
                    step=e.step,
                    error=e.error,
                )
            else:
                return self._decided(result, "remote", identifier, endpoint)

        if self._counter_store is not None:
            try:
                result = await self._check_fallback(identifier, endpoint, max_requests, window)
            except Exception as e:
                return self._fail_open(identifier, endpoint, max_requests, window,
                                       f"{type(e).__name__}: {e}")
            return self._decided(result, "fallback", identifier, endpoint)

        return self._fail_open(
            identifier, endpoint, max_requests, window,
            primary_error or "remote tier unavailable and no counter store configured",
        )

    rate_limit = check

    async def _check_remote(
        self, identifier: str, endpoint: str, max_requests: int, window: int
    ) -> RateLimitResult:
        key = window_key(identifier, endpoint, window)
        now_ms = int(self._clock() * 1000)
        window_ms = window * 1000
        reset = (now_ms + window_ms) // 1000

        pruned = await self._remote.zremrangebyscore(key, 0, now_ms - window_ms)
        if not pruned.is_ok:
            raise _PrimaryPathFailed("prune", pruned.error)

        counted = await self._remote.zcard(key)
        if not counted.is_ok:
            raise _PrimaryPathFailed("count", counted.error)
        current = int(counted.value or 0)

        if current >= max_requests:
            return RateLimitResult(
                success=False,
                limit=max_requests,
                remaining=0,
                reset=reset,
                retry_after=await self._retry_after(key, now_ms, window),
            )

        added = await self._remote.zadd(key, {f"{now_ms}-{uuid.uuid4().hex}": now_ms})
        if not added.is_ok:
            raise _PrimaryPathFailed("admit", added.error)
        expired = await self._remote.expire(key, window)
        if not expired.is_ok:
            raise _PrimaryPathFailed("expire", expired.error)

        return RateLimitResult(
            success=True,
            limit=max_requests,
            remaining=max(0, max_requests - current - 1),
            reset=reset,
        )

    async def _retry_after(self, key: str, now_ms: int, window: int) -> int:
        oldest = await self._remote.zrange(key, 0, 0, withscores=True)
        if oldest.is_ok and oldest.value:
            _, score = oldest.value[0]
            return max(1, math.ceil((float(score) + window * 1000 - now_ms) / 1000))
        return window

    async def _check_fallback(
        self, identifier: str, endpoint: str, max_requests: int, window: int
    ) -> RateLimitResult:
        decision = await self._counter_store.check_and_increment(
            identifier, window, max_requests, endpoint
        )
        retry_after = None
        if not decision.allowed:
            retry_after = max(1, math.ceil(decision.reset_time - self._clock()))
        return RateLimitResult(
            success=decision.allowed,
            limit=max_requests,
            remaining=0 if not decision.allowed else max(0, decision.remaining),
            reset=int(decision.reset_time),
            retry_after=retry_after,
        )

    def _fail_open(
        self, identifier: str, endpoint: str, max_requests: int, window: int, error: str
    ) -> RateLimitResult:
        logger.warning(
            "Rate limit check failed, allowing request",
            stage=Stage.RATE_LIMIT_FAIL_OPEN.value,
            identifier=identifier,
            endpoint=endpoint,
            error=error,
        )
        if self._metrics:
            self._metrics.record_rate_limit_decision(True, "fail_open")
        return RateLimitResult(
            success=True,
            limit=max_requests,
            remaining=max(0, max_requests - 1),
            reset=int(self._clock()) + window,
        )

    def _decided(
        self, result: RateLimitResult, path: str, identifier: str, endpoint: str
    ) -> RateLimitResult:
        if self._metrics:
            self._metrics.record_rate_limit_decision(result.success, path)
        if not result.success:
            logger.info(
                "Rate limit exceeded",
                stage=Stage.RATE_LIMIT_FALLBACK.value if path == "fallback" else Stage.RATE_LIMIT.value,
                identifier=identifier,
                endpoint=endpoint,
                limit=result.limit,
                retry_after=result.retry_after,
            )
        return result


def create_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Response headers for a rate limit decision."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }
    if result.retry_after is not None:
        headers["Retry-After"] = str(result.retry_after)
    return headers
