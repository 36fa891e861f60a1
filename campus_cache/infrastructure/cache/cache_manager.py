#!/usr/bin/env python3
"""
Two-Tier Cache Manager

Architecture:
    CacheManager (Public API: get / set / get_or_set / invalidate ...)
        ├── CacheStrategy (tier order, remote repopulation, stale lookups)
        │   ├── LocalBoundedCache (in-process FIFO + TTL)
        │   └── RemoteCache (Redis-backed or disabled)
        ├── CacheObserver (operation ring buffer + structured logs)
        └── BackgroundRefreshWorker (stale-while-revalidate refreshes)

Tier order:
    request_scoped: remote -> local  (local cannot be trusted across invocations)
    long_lived:     local -> remote  (remote hit repopulates local)

Failure semantics:
    The remote tier is never required for correctness. Remote failures are
    Outcome values that degrade to "miss" or "local only". Fetcher errors
    propagate to the caller unchanged.

Author: Refactored for clarity and maintainability
Date: 2025-12-13
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any, TypeVar

from campus_cache.core.config.constants import (
    CacheOperation,
    CacheResult,
    CacheTier,
    ExecutionMode,
    HealthStatus,
    Stage,
    detect_execution_mode,
    is_stale_eligible,
    stale_key,
)
from campus_cache.core.config.settings import Settings, get_settings
from campus_cache.core.exceptions import CacheSerializationError
from campus_cache.core.interfaces.remote_cache import RemoteCache
from campus_cache.core.logging.logger import get_logger, log_stage
from campus_cache.infrastructure.cache.background_refresh import (
    BackgroundRefreshWorker,
    RefreshConfig,
)
from campus_cache.infrastructure.cache.local_cache import LocalBoundedCache
from campus_cache.infrastructure.cache.operation_log import CacheOperationLog, HitRateReport
from campus_cache.infrastructure.cache.serialization import (
    decode_envelope,
    decode_value,
    encode_envelope,
    encode_value,
)
from campus_cache.infrastructure.monitoring.metrics_collector import MetricsCollector

logger = get_logger(__name__)

T = TypeVar("T")
Fetcher = Callable[[], Awaitable[T]]


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


# =============================================================================
# LAYER 1: TIER COORDINATION
# =============================================================================


@dataclass
class Lookup:
    """
    Result of a tiered lookup.

    tier is the tier that served the payload, or the last tier consulted on
    a miss. remote_error is set when the remote tier answered with an error.
    """

    payload: bytes | None
    tier: CacheTier | None
    remote_error: str | None = None


class CacheStrategy:
    """
    Reads and writes across both tiers.

    GET:  tiers in mode order; a remote hit repopulates local with the
          entry's remaining lifetime
    SET:  remote (when available) then local; returns the remote outcome
    STALE: local then remote, independent of mode
    """

    def __init__(
        self,
        local: LocalBoundedCache,
        remote: RemoteCache,
        mode: ExecutionMode,
        clock: Callable[[], float] = time.time,
    ):
        self._local = local
        self._remote = remote
        self._mode = mode
        self._clock = clock

    @property
    def tier_order(self) -> tuple[CacheTier, CacheTier]:
        if self._mode is ExecutionMode.REQUEST_SCOPED:
            return (CacheTier.REMOTE, CacheTier.LOCAL)
        return (CacheTier.LOCAL, CacheTier.REMOTE)

    async def lookup(self, key: str) -> Lookup:
        return await self._lookup(key, self.tier_order)

    async def lookup_stale(self, key: str) -> Lookup:
        return await self._lookup(stale_key(key), (CacheTier.LOCAL, CacheTier.REMOTE))

    async def _lookup(self, key: str, order: tuple[CacheTier, CacheTier]) -> Lookup:
        last_tier: CacheTier | None = None
        remote_error: str | None = None

        for tier in order:
            if tier is CacheTier.LOCAL:
                last_tier = tier
                payload = self._local.get(key)
                if payload is not None:
                    return Lookup(payload, tier, remote_error)
                continue

            if not self._remote.is_available():
                continue
            last_tier = tier
            outcome = await self._remote.get(key)
            if outcome.is_error:
                remote_error = outcome.error
                continue
            if not outcome.is_hit:
                continue

            try:
                payload, stored_at, ttl = decode_envelope(outcome.value)
            except CacheSerializationError as e:
                remote_error = e.message
                continue

            remaining = ttl - (self._clock() - stored_at)
            if remaining <= 0:
                continue
            self._local.set(key, payload, remaining)
            return Lookup(payload, tier, remote_error)

        return Lookup(None, last_tier, remote_error)

    async def write_remote(self, key: str, payload: bytes, ttl: float):
        envelope = encode_envelope(payload, self._clock(), ttl)
        return await self._remote.set(key, envelope, ttl)

    def write_local(self, key: str, payload: bytes, ttl: float) -> None:
        self._local.set(key, payload, ttl)


# =============================================================================
# LAYER 2: OBSERVABILITY
# =============================================================================


_OPERATION_STAGES = {
    CacheOperation.GET: Stage.CACHE_GET,
    CacheOperation.GET_OR_SET: Stage.CACHE_GET_OR_SET,
    CacheOperation.SET: Stage.CACHE_SET,
}


class CacheObserver:
    """
    Records every operation into the ring buffer and the structured log.

    Hits and misses log at debug; remote errors and write warnings at warning.
    """

    def __init__(self, operation_log: CacheOperationLog):
        self.operation_log = operation_log

    def record(
        self,
        operation: CacheOperation,
        key: str,
        result: CacheResult,
        tier: CacheTier | None,
        duration_ms: float,
        error: str | None = None,
    ) -> None:
        self.operation_log.record(operation, key, result, tier, duration_ms, error)

        level = "warning" if result in (CacheResult.ERROR, CacheResult.WARNING) else "debug"
        log_stage(
            logger,
            _OPERATION_STAGES.get(operation, Stage.CACHE_INVALIDATE).value,
            f"Cache {operation.value} {result.value}",
            level=level,
            key=key,
            tier=tier.value if tier else None,
            duration_ms=round(duration_ms, 3),
            error=error,
        )


# =============================================================================
# PUBLIC API
# =============================================================================


class CacheManager:
    """
    Two-tier cache facade.

    Usage:
        cache = CacheManager(create_remote_cache(settings), settings)

        school = await cache.get_or_set(CacheKeys.school(school_id), load_school, ttl.LONG)
        stats = await cache.get_or_set(
            CacheKeys.admin_stats(), load_stats, ttl.DASHBOARD_STATS,
            stale_while_revalidate=True,
        )
        await cache.invalidate(CacheKeys.school(school_id))
    """

    def __init__(
        self,
        remote: RemoteCache,
        settings: Settings | None = None,
        *,
        local: LocalBoundedCache | None = None,
        refresher: BackgroundRefreshWorker | None = None,
        mode: ExecutionMode | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        STAGE-2.0: Cache manager initialization
        """
        self._settings = settings or get_settings()
        cfg = self._settings.cache

        self._remote = remote
        self._local = local or LocalBoundedCache(max_size=cfg.CACHE_LOCAL_MAX_SIZE, clock=clock)
        self._mode = mode or detect_execution_mode(cfg.CACHE_EXECUTION_MODE)
        self._strategy = CacheStrategy(self._local, remote, self._mode, clock=clock)
        self._observer = CacheObserver(
            CacheOperationLog(capacity=cfg.CACHE_OPERATION_LOG_SIZE, metrics=metrics, clock=clock)
        )
        self._refresher = refresher or BackgroundRefreshWorker(
            RefreshConfig(queue_size=cfg.CACHE_REFRESH_QUEUE_SIZE, workers=cfg.CACHE_REFRESH_WORKERS),
            metrics=metrics,
        )
        self._default_ttl = cfg.CACHE_TTL_MEDIUM
        self._verify_writes = cfg.CACHE_VERIFY_WRITES

        logger.info(
            "Cache manager initialized",
            stage=Stage.INITIALIZATION.value,
            execution_mode=self._mode.value,
            local_max_size=self._local.max_size,
            remote_available=remote.is_available(),
        )

    @property
    def mode(self) -> ExecutionMode:
        return self._mode

    @property
    def local(self) -> LocalBoundedCache:
        return self._local

    @property
    def remote(self) -> RemoteCache:
        return self._remote

    @property
    def refresher(self) -> BackgroundRefreshWorker:
        return self._refresher

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        await self._refresher.start()

    async def stop(self) -> None:
        await self._refresher.stop()

    # -------------------------------------------------------------------------
    # Core Cache Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """
        Return the cached value, or None on a miss.

        Never raises on remote failure; a remote error is logged and the
        lookup continues as a miss for that tier.
        """
        started = time.perf_counter()
        lookup = await self._strategy.lookup(key)
        self._record_lookup(CacheOperation.GET, key, lookup, _elapsed_ms(started))
        if lookup.payload is None:
            return None
        return decode_value(lookup.payload)

    async def contains(self, key: str) -> bool:
        """
        True when either tier holds key, including a cached null.

        Recorded as a GET lookup.
        """
        started = time.perf_counter()
        lookup = await self._strategy.lookup(key)
        self._record_lookup(CacheOperation.GET, key, lookup, _elapsed_ms(started))
        return lookup.payload is not None

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Write the value to both tiers.

        A remote failure is logged and does not fail the call; the local write
        always happens. Dashboard/stats keys also get a stale copy with twice
        the TTL.

        Raises:
            CacheSerializationError: value cannot be encoded
            ValueError: ttl is zero or negative
        """
        ttl = self._resolve_ttl(ttl)
        payload = encode_value(key, value)
        await self._store(key, payload, ttl)

    async def get_or_set(
        self,
        key: str,
        fetcher: Fetcher,
        ttl: float | None = None,
        *,
        stale_while_revalidate: bool = False,
        stale_ttl: float | None = None,
    ) -> Any:
        """
        Cache-aside read.

        STAGE-2.5: get_or_set

        1. Hit in either tier (mode order): return it, fetcher not called.
        2. Miss with stale_while_revalidate on a dashboard/stats key and a
           stale copy present: return the stale copy immediately and queue a
           background refresh.
        3. Otherwise await the fetcher once, store the result, return it.

        Fetcher exceptions propagate unchanged and nothing is stored.
        Concurrent misses on the same key may each call the fetcher.
        A zero or negative ttl raises ValueError before any lookup.
        """
        ttl = self._resolve_ttl(ttl)
        if stale_ttl is not None:
            stale_ttl = self._resolve_ttl(stale_ttl)
        started = time.perf_counter()

        lookup = await self._strategy.lookup(key)
        self._record_lookup(CacheOperation.GET_OR_SET, key, lookup, _elapsed_ms(started))
        if lookup.payload is not None:
            return decode_value(lookup.payload)

        if stale_while_revalidate and is_stale_eligible(key):
            stale = await self._strategy.lookup_stale(key)
            if stale.payload is not None and self._schedule_refresh(key, fetcher, ttl, stale_ttl):
                self._observer.record(
                    CacheOperation.GET_OR_SET, key, CacheResult.STALE_HIT, stale.tier,
                    _elapsed_ms(started),
                )
                return decode_value(stale.payload)

        value = await fetcher()
        payload = encode_value(key, value)
        remote_stored = await self._store(key, payload, ttl, stale_ttl)

        if self._verify_writes and remote_stored:
            await self._verify_remote_write(key, payload)

        return value

    async def invalidate(self, key: str, *, include_stale: bool = False) -> None:
        """
        Delete from the local tier, then best-effort from the remote tier.

        Never raises.
        """
        keys = [key, stale_key(key)] if include_stale else [key]

        started = time.perf_counter()
        for k in keys:
            self._local.delete(k)
        self._observer.record(
            CacheOperation.INVALIDATE, key, CacheResult.SUCCESS, CacheTier.LOCAL, _elapsed_ms(started)
        )

        if self._remote.is_available():
            started = time.perf_counter()
            outcome = await self._remote.delete(*keys)
            self._observer.record(
                CacheOperation.INVALIDATE,
                key,
                CacheResult.SUCCESS if outcome.is_ok else CacheResult.ERROR,
                CacheTier.REMOTE,
                _elapsed_ms(started),
                outcome.error,
            )

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern (e.g. ``school:*``).

        Returns:
            Number of local entries removed
        """
        started = time.perf_counter()
        removed = self._local.delete_matching(pattern)
        self._observer.record(
            CacheOperation.INVALIDATE_PATTERN, pattern, CacheResult.SUCCESS, CacheTier.LOCAL,
            _elapsed_ms(started),
        )

        if self._remote.is_available():
            started = time.perf_counter()
            outcome = await self._remote.delete_pattern(pattern)
            self._observer.record(
                CacheOperation.INVALIDATE_PATTERN,
                pattern,
                CacheResult.SUCCESS if outcome.is_ok else CacheResult.ERROR,
                CacheTier.REMOTE,
                _elapsed_ms(started),
                outcome.error,
            )

        logger.info("Cache pattern invalidated", stage=Stage.CACHE_INVALIDATE.value,
                    pattern=pattern, local_removed=removed)
        return removed

    def clear(self) -> None:
        """Empty the local tier. The shared remote tier is left untouched."""
        started = time.perf_counter()
        self._local.clear()
        self._observer.record(
            CacheOperation.CLEAR, "*", CacheResult.SUCCESS, CacheTier.LOCAL, _elapsed_ms(started)
        )

    def cleanup_expired(self) -> int:
        """Sweep expired local entries; returns the number removed."""
        removed = self._local.cleanup_expired()
        if removed:
            logger.info("Expired cache entries removed", stage=Stage.CACHE_INVALIDATE.value,
                        removed=removed)
        return removed

    async def wait_for_background_refreshes(self) -> None:
        await self._refresher.drain()

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    def get_cache_hit_rate(self, sample: int = 1000) -> HitRateReport:
        return self._observer.operation_log.hit_rate(sample)

    def get_cache_operations(self, limit: int = 50) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self._observer.operation_log.recent(limit)]

    def get_cache_stats(self) -> dict[str, Any]:
        report = self.get_cache_hit_rate()
        return {
            "size": self._local.size,
            "max_size": self._local.max_size,
            "total_hits": report.hits,
            "total_misses": report.misses,
            "stale_hits": report.stale_hits,
            "hit_rate": round(report.hit_rate, 2),
            "remote_available": self._remote.is_available(),
            "remote_health": self._remote.health.to_dict(),
            "execution_mode": self._mode.value,
            "background_refresh": {**asdict(self._refresher.stats), "pending": self._refresher.pending},
            "endpoint_stats": self._observer.operation_log.endpoint_stats(),
        }

    async def health_check(self) -> dict[str, Any]:
        health = {
            "status": "healthy",
            "execution_mode": self._mode.value,
            "local": {"status": "healthy", "size": self._local.size, "max_size": self._local.max_size},
            "remote": self._remote.health.to_dict(),
        }
        if self._remote.is_available():
            remote_health = await self._remote.probe()
            health["remote"] = remote_health.to_dict()
            if remote_health.status is not HealthStatus.HEALTHY:
                health["status"] = "degraded"
        else:
            health["status"] = "degraded"
        return health

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _resolve_ttl(self, ttl: float | None) -> float:
        if ttl is None:
            return self._default_ttl
        if ttl <= 0:
            raise ValueError(f"cache ttl must be positive, got {ttl}")
        return ttl

    def _record_lookup(self, operation: CacheOperation, key: str, lookup: Lookup, duration_ms: float) -> None:
        if lookup.remote_error:
            self._observer.record(
                operation, key, CacheResult.ERROR, CacheTier.REMOTE, duration_ms, lookup.remote_error
            )
        result = CacheResult.HIT if lookup.payload is not None else CacheResult.MISS
        self._observer.record(operation, key, result, lookup.tier, duration_ms)

    async def _store(
        self, key: str, payload: bytes, ttl: float, stale_ttl: float | None = None
    ) -> bool:
        """Write primary (and stale copy where eligible). Returns True when the remote write landed."""
        remote_stored = await self._write_tiers(key, payload, ttl)
        if is_stale_eligible(key):
            await self._write_tiers(stale_key(key), payload, stale_ttl if stale_ttl is not None else ttl * 2)
        return remote_stored

    async def _write_tiers(self, key: str, payload: bytes, ttl: float) -> bool:
        remote_stored = False
        if self._remote.is_available():
            started = time.perf_counter()
            outcome = await self._strategy.write_remote(key, payload, ttl)
            remote_stored = outcome.is_ok
            self._observer.record(
                CacheOperation.SET,
                key,
                CacheResult.SUCCESS if outcome.is_ok else CacheResult.ERROR,
                CacheTier.REMOTE,
                _elapsed_ms(started),
                outcome.error,
            )

        started = time.perf_counter()
        self._strategy.write_local(key, payload, ttl)
        self._observer.record(
            CacheOperation.SET, key, CacheResult.SUCCESS, CacheTier.LOCAL, _elapsed_ms(started)
        )
        return remote_stored

    async def _verify_remote_write(self, key: str, payload: bytes) -> None:
        started = time.perf_counter()
        outcome = await self._remote.get(key)
        error = None
        if not outcome.is_hit:
            error = outcome.error or "value missing on read back"
        else:
            try:
                stored, _, _ = decode_envelope(outcome.value)
            except CacheSerializationError as e:
                error = e.message
            else:
                if decode_value(stored) != decode_value(payload):
                    error = "value mismatch on read back"

        if error:
            self._observer.record(
                CacheOperation.SET, key, CacheResult.WARNING, CacheTier.REMOTE,
                _elapsed_ms(started), error,
            )

    def _schedule_refresh(
        self, key: str, fetcher: Fetcher, ttl: float, stale_ttl: float | None
    ) -> bool:
        """
        Queue a refresh of key. True when a refresh for key is now in flight.
        """

        async def refresh() -> None:
            value = await fetcher()
            await self._store(key, encode_value(key, value), ttl, stale_ttl)

        if self._refresher.submit(key, refresh):
            return True
        return self._refresher.is_pending(key)
