"""
Remote Cache Client

Architecture:
    create_remote_cache(settings)
        ├── RedisRemoteCache (network backed)
        │     ├── ConnectionManager (lazy client creation and cleanup)
        │     ├── OperationExecutor (one retry with exponential backoff, Outcome results)
        │     └── HealthMonitor (cached status + periodic active probe)
        └── DisabledRemoteCache (tier off for this process)

Failure policy:
    Each operation is attempted once and retried once after a short
    exponential delay (base 10ms). When retries are exhausted the operation
    returns Outcome.fail(...) and the health status flips to unhealthy.
    Nothing here raises RedisError to callers.

Author: Refactored for clarity and maintainability
Date: 2025-12-13
"""

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from urllib.parse import urlsplit

import redis.asyncio as redis
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from campus_cache.core.config.constants import HealthStatus, Stage
from campus_cache.core.config.settings import Settings, get_settings
from campus_cache.core.exceptions import ConfigurationError
from campus_cache.core.interfaces.remote_cache import RemoteHealth
from campus_cache.core.logging.logger import get_logger
from campus_cache.core.outcome import Outcome
from campus_cache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)

HEALTH_PROBE_TTL = 10

SUPPORTED_URL_SCHEMES = ("redis", "rediss", "unix")


def validate_redis_url(url: str) -> None:
    """
    Reject endpoints redis.asyncio cannot dial (e.g. an https:// REST URL).

    Raises:
        ConfigurationError: scheme is not redis, rediss or unix
    """
    scheme = urlsplit(url).scheme.lower()
    if scheme not in SUPPORTED_URL_SCHEMES:
        raise ConfigurationError(
            f"REDIS_URL scheme '{scheme or '(none)'}' is not supported",
            details={"field": "REDIS_URL", "supported": list(SUPPORTED_URL_SCHEMES)},
        )


def ttl_to_seconds(ttl: float | None) -> int | None:
    """Remote expiries are whole seconds; never round a positive TTL down to zero."""
    if ttl is None:
        return None
    return max(1, math.ceil(ttl))


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# =============================================================================


class ConnectionManager:
    """
    Owns the redis.asyncio client.

    The client is created lazily on first use and cached for the lifetime of
    this object. redis.asyncio connects on demand, so creation itself never
    performs I/O.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._client: redis.Redis | None = None

    def get_client(self) -> redis.Redis:
        if self._client is None:
            cfg = self._settings.redis
            self._client = redis.from_url(
                cfg.REDIS_URL,
                password=cfg.REDIS_TOKEN,
                max_connections=cfg.REDIS_MAX_CONNECTIONS,
                socket_timeout=cfg.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=cfg.REDIS_SOCKET_CONNECT_TIMEOUT,
                decode_responses=True,
            )
            logger.info(
                "Remote cache client created",
                stage=Stage.REDIS_CONNECT.value,
                url=cfg.REDIS_URL,
                max_connections=cfg.REDIS_MAX_CONNECTIONS,
            )
        return self._client

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Remote cache client closed", stage=Stage.REDIS_CONNECT.value)

    def is_connected(self) -> bool:
        return self._client is not None


# =============================================================================
# LAYER 2: HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """
    Cached health status of the remote tier.

    Updated passively by every operation outcome and actively by a periodic
    probe that runs independent of traffic.
    """

    def __init__(self, interval: float, metrics: MetricsCollector | None = None):
        self._interval = interval
        self._metrics = metrics
        self.health = RemoteHealth()
        self._task: asyncio.Task | None = None

    def mark_healthy(self, latency_ms: float | None = None) -> None:
        if self.health.status is not HealthStatus.HEALTHY:
            logger.info("Remote cache healthy", stage=Stage.REDIS_HEALTH.value)
        self.health.status = HealthStatus.HEALTHY
        self.health.last_error = None
        if latency_ms is not None:
            self.health.latency_ms = latency_ms
        if self._metrics:
            self._metrics.set_remote_health(True)

    def mark_unhealthy(self, error: str) -> None:
        if self.health.status is not HealthStatus.UNHEALTHY:
            logger.warning("Remote cache unhealthy", stage=Stage.REDIS_HEALTH.value, error=error)
        self.health.status = HealthStatus.UNHEALTHY
        self.health.last_error = error
        if self._metrics:
            self._metrics.set_remote_health(False)

    def start(self, probe: Callable[[], Awaitable[RemoteHealth]]) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(probe), name="remote-cache-health")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self, probe: Callable[[], Awaitable[RemoteHealth]]) -> None:
        while True:
            await probe()
            await asyncio.sleep(self._interval)


# =============================================================================
# LAYER 3: OPERATION EXECUTOR
# =============================================================================


class OperationExecutor:
    """
    Executes remote commands under the uniform retry policy.

    Every command is attempted, retried after base_delay * 2^(attempt-1) on a
    transport or server error, and converted into an Outcome.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        health: HealthMonitor,
        attempts: int = 2,
        base_delay: float = 0.01,
        metrics: MetricsCollector | None = None,
    ):
        self._connection = connection
        self._health = health
        self._attempts = attempts
        self._base_delay = base_delay
        self._metrics = metrics

    async def execute(
        self,
        operation: str,
        key: str,
        command: Callable[[redis.Redis], Awaitable[T]],
    ) -> Outcome[T]:
        try:
            client = self._connection.get_client()
        except ValueError as e:
            return self._failed(operation, key, e)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=self._base_delay, max=1),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=lambda retry_state: self._on_retry(operation, key, retry_state),
            reraise=True,
        )
        try:
            result = await retrying(command, client)
        except (RetryError, *RETRYABLE_ERRORS) as e:
            return self._failed(operation, key, e)

        self._health.mark_healthy()
        return Outcome.ok(result)

    def _failed(self, operation: str, key: str, exc: BaseException) -> Outcome:
        error = f"{type(exc).__name__}: {exc}"
        logger.error(
            "Remote cache operation failed",
            stage=Stage.REDIS_OPERATION.value,
            operation=operation,
            key=key,
            error=error,
        )
        self._health.mark_unhealthy(error)
        return Outcome.fail(error)

    def _on_retry(self, operation: str, key: str, retry_state: Any) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.info(
            "Remote cache retry",
            stage=Stage.REDIS_RETRY.value,
            operation=operation,
            key=key,
            attempt=retry_state.attempt_number,
            delay=round(retry_state.next_action.sleep if retry_state.next_action else 0, 3),
            error=str(exc) if exc else None,
        )
        if self._metrics:
            self._metrics.record_remote_retry(operation)


# =============================================================================
# PUBLIC API: NETWORK BACKED CLIENT
# =============================================================================


class RedisRemoteCache:
    """
    Remote tier backed by a Redis-protocol service.

    Usage:
        remote = create_remote_cache(settings)
        outcome = await remote.get("school:42")
        if outcome.is_hit:
            payload = outcome.value
    """

    def __init__(self, settings: Settings | None = None, metrics: MetricsCollector | None = None):
        self._settings = settings or get_settings()
        cfg = self._settings.redis
        if not cfg.REDIS_URL:
            raise ConfigurationError(
                "REDIS_URL is required for the remote cache", details={"field": "REDIS_URL"}
            )
        validate_redis_url(cfg.REDIS_URL)
        self._connection = ConnectionManager(self._settings)
        self._health = HealthMonitor(cfg.REDIS_HEALTH_CHECK_INTERVAL, metrics=metrics)
        self._executor = OperationExecutor(
            self._connection,
            self._health,
            attempts=cfg.REDIS_RETRY_ATTEMPTS,
            base_delay=cfg.REDIS_RETRY_BASE_DELAY,
            metrics=metrics,
        )

    @property
    def health(self) -> RemoteHealth:
        return self._health.health

    def is_available(self) -> bool:
        return True

    # -------------------------------------------------------------------------
    # Basic Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Outcome[str]:
        return await self._executor.execute("GET", key, lambda c: c.get(key))

    async def set(self, key: str, value: str, ttl: float | None = None) -> Outcome[bool]:
        seconds = ttl_to_seconds(ttl)

        async def command(client: redis.Redis) -> bool:
            return bool(await client.set(key, value, ex=seconds))

        return await self._executor.execute("SET", key, command)

    async def delete(self, *keys: str) -> Outcome[int]:
        return await self._executor.execute("DEL", ",".join(keys), lambda c: c.delete(*keys))

    async def exists(self, key: str) -> Outcome[bool]:
        async def command(client: redis.Redis) -> bool:
            return await client.exists(key) > 0

        return await self._executor.execute("EXISTS", key, command)

    async def expire(self, key: str, seconds: int) -> Outcome[bool]:
        async def command(client: redis.Redis) -> bool:
            return bool(await client.expire(key, seconds))

        return await self._executor.execute("EXPIRE", key, command)

    # -------------------------------------------------------------------------
    # Counter Operations
    # -------------------------------------------------------------------------

    async def incr(self, key: str) -> Outcome[int]:
        return await self._executor.execute("INCR", key, lambda c: c.incr(key))

    async def incr_with_expiry(self, key: str, seconds: int) -> Outcome[int]:
        async def command(client: redis.Redis) -> int:
            value = await client.incr(key)
            if value == 1:
                await client.expire(key, seconds)
            return value

        return await self._executor.execute("INCR_EXPIRE", key, command)

    # -------------------------------------------------------------------------
    # Sorted Set Operations (sliding window rate limiting)
    # -------------------------------------------------------------------------

    async def zadd(self, key: str, mapping: dict[str, float]) -> Outcome[int]:
        return await self._executor.execute("ZADD", key, lambda c: c.zadd(key, mapping))

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> Outcome[int]:
        return await self._executor.execute(
            "ZREMRANGEBYSCORE", key, lambda c: c.zremrangebyscore(key, min_score, max_score)
        )

    async def zcard(self, key: str) -> Outcome[int]:
        return await self._executor.execute("ZCARD", key, lambda c: c.zcard(key))

    async def zrange(
        self, key: str, start: int, stop: int, withscores: bool = False
    ) -> Outcome[list]:
        return await self._executor.execute(
            "ZRANGE", key, lambda c: c.zrange(key, start, stop, withscores=withscores)
        )

    # -------------------------------------------------------------------------
    # Pattern Operations
    # -------------------------------------------------------------------------

    async def delete_pattern(self, pattern: str) -> Outcome[int]:
        async def command(client: redis.Redis) -> int:
            deleted = 0
            batch: list[str] = []
            async for key in client.scan_iter(match=pattern, count=200):
                batch.append(key)
                if len(batch) >= 200:
                    deleted += await client.delete(*batch)
                    batch.clear()
            if batch:
                deleted += await client.delete(*batch)
            return deleted

        return await self._executor.execute("SCAN_DEL", pattern, command)

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    async def probe(self) -> RemoteHealth:
        """
        Active health check: SET, GET and DEL a throwaway key.

        STAGE-REDIS.HEALTH
        """
        key = f"health:check:{int(time.time() * 1000)}"
        start = time.perf_counter()
        self._health.health.last_check = time.time()
        try:
            client = self._connection.get_client()
            await client.set(key, "ok", ex=HEALTH_PROBE_TTL)
            value = await client.get(key)
            await client.delete(key)
        except (ValueError, *RETRYABLE_ERRORS) as e:
            self._health.mark_unhealthy(f"{type(e).__name__}: {e}")
            return self._health.health

        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        if value == "ok":
            self._health.mark_healthy(latency_ms)
        else:
            self._health.mark_unhealthy("health probe read back a different value")
        return self._health.health

    async def start_health_checks(self) -> None:
        self._health.start(self.probe)

    async def stop_health_checks(self) -> None:
        await self._health.stop()

    async def close(self) -> None:
        await self.stop_health_checks()
        await self._connection.disconnect()


# =============================================================================
# PUBLIC API: DISABLED CLIENT
# =============================================================================


class DisabledRemoteCache:
    """
    Remote tier that is switched off for this process.

    Selected when the feature flag is off or credentials are missing. Every
    operation answers Outcome.unavailable() without I/O.
    """

    def __init__(self, reason: str):
        self.reason = reason
        self._health = RemoteHealth(status=HealthStatus.DISABLED, last_error=reason)

    @property
    def health(self) -> RemoteHealth:
        return self._health

    def is_available(self) -> bool:
        return False

    async def get(self, key: str) -> Outcome[str]:
        return Outcome.unavailable()

    async def set(self, key: str, value: str, ttl: float | None = None) -> Outcome[bool]:
        return Outcome.unavailable()

    async def delete(self, *keys: str) -> Outcome[int]:
        return Outcome.unavailable()

    async def exists(self, key: str) -> Outcome[bool]:
        return Outcome.unavailable()

    async def expire(self, key: str, seconds: int) -> Outcome[bool]:
        return Outcome.unavailable()

    async def incr(self, key: str) -> Outcome[int]:
        return Outcome.unavailable()

    async def incr_with_expiry(self, key: str, seconds: int) -> Outcome[int]:
        return Outcome.unavailable()

    async def zadd(self, key: str, mapping: dict[str, float]) -> Outcome[int]:
        return Outcome.unavailable()

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> Outcome[int]:
        return Outcome.unavailable()

    async def zcard(self, key: str) -> Outcome[int]:
        return Outcome.unavailable()

    async def zrange(
        self, key: str, start: int, stop: int, withscores: bool = False
    ) -> Outcome[list]:
        return Outcome.unavailable()

    async def delete_pattern(self, pattern: str) -> Outcome[int]:
        return Outcome.unavailable()

    async def probe(self) -> RemoteHealth:
        return self._health

    async def start_health_checks(self) -> None:
        return None

    async def stop_health_checks(self) -> None:
        return None

    async def close(self) -> None:
        return None


# =============================================================================
# FACTORY
# =============================================================================


def create_remote_cache(
    settings: Settings | None = None, metrics: MetricsCollector | None = None
) -> RedisRemoteCache | DisabledRemoteCache:
    """
    Choose the remote tier implementation once, at construction time.

    The tier needs the feature flag on and both the endpoint URL and access
    token configured, with a URL redis.asyncio can dial (redis, rediss or
    unix). A missing or unusable precondition disables the tier for the
    process; it is logged once here and never retried.
    """
    settings = settings or get_settings()
    cfg = settings.redis

    missing = []
    if not cfg.REDIS_ENABLED:
        missing.append("REDIS_ENABLED")
    if not cfg.REDIS_URL:
        missing.append("REDIS_URL")
    if not cfg.REDIS_TOKEN:
        missing.append("REDIS_TOKEN")

    if missing:
        reason = f"remote cache disabled: {', '.join(missing)} not set"
        logger.warning(
            "Remote cache tier disabled",
            stage=Stage.REDIS_CONNECT.value,
            missing=missing,
        )
        return DisabledRemoteCache(reason)

    try:
        validate_redis_url(cfg.REDIS_URL)
    except ConfigurationError as e:
        logger.warning(
            "Remote cache tier disabled",
            stage=Stage.REDIS_CONNECT.value,
            error=e.message,
        )
        return DisabledRemoteCache(f"remote cache disabled: {e.message}")

    return RedisRemoteCache(settings, metrics=metrics or get_metrics_collector())
