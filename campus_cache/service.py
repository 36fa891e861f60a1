"""
Cache Service

Owns every component of the caching and admission-control layer and their
lifecycle. Nothing is constructed at import time; the host builds one
service, calls start() once and stop() on shutdown.

    service = CacheService(settings, counter_store=RpcCounterStore(rpc), data_source=source)
    await service.start()
    value = await service.cache.get_or_set(key, fetch, ttl)
    result = await service.rate_limiter.check(identifier, "API")
    await service.stop()
"""

import asyncio
import time
from collections.abc import Callable

from campus_cache.core.config.constants import Stage
from campus_cache.core.config.settings import Settings, get_settings
from campus_cache.core.interfaces.remote_cache import RemoteCache
from campus_cache.core.logging.logger import get_logger
from campus_cache.infrastructure.cache.cache_manager import CacheManager
from campus_cache.infrastructure.cache.cache_warmer import CacheWarmer, WarmingScheduler, WarmReport
from campus_cache.infrastructure.cache.redis_client import create_remote_cache
from campus_cache.infrastructure.cache.warm_plan import DashboardDataSource, build_dashboard_warm_plan
from campus_cache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from campus_cache.rate_limiting.counter_store import AtomicCounterStore, LocalCounterStore
from campus_cache.rate_limiting.rate_limiter import RateLimiter

logger = get_logger(__name__)


class CacheService:
    """
    Explicitly constructed owner of the remote tier, cache facade, rate
    limiter and warming scheduler.

    The scheduler exists only when a data source is supplied and
    CACHE_WARMING_ENABLED is true. Without an injected counter store the
    limiter falls back to an in-process LocalCounterStore.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        remote: RemoteCache | None = None,
        counter_store: AtomicCounterStore | None = None,
        data_source: DashboardDataSource | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.metrics = metrics or get_metrics_collector()
        self.remote = remote or create_remote_cache(self.settings, self.metrics)
        self.cache = CacheManager(self.remote, self.settings, metrics=self.metrics, clock=clock)
        self.counter_store = counter_store if counter_store is not None else LocalCounterStore(clock=clock)
        self.rate_limiter = RateLimiter(
            self.remote, self.counter_store, settings=self.settings, metrics=self.metrics, clock=clock
        )
        self.warmer = CacheWarmer(self.cache, metrics=self.metrics)

        self.scheduler: WarmingScheduler | None = None
        warming = self.settings.warming
        if data_source is not None and warming.CACHE_WARMING_ENABLED:
            self.scheduler = WarmingScheduler(
                self.warmer,
                build_dashboard_warm_plan(data_source, self.settings),
                interval=warming.CACHE_WARMING_INTERVAL,
                cooldown=warming.CACHE_WARMING_COOLDOWN,
                timeout=warming.CACHE_WARMING_TIMEOUT,
                metrics=self.metrics,
            )

        self._sweep_task: asyncio.Task | None = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """
        STAGE-0: Start health checks, refresh workers and the warm scheduler.

        Idempotent.
        """
        if self._started:
            return
        await self.remote.start_health_checks()
        await self.cache.start()
        if self.scheduler is not None:
            await self.scheduler.start(run_immediately=True)
        self._sweep_task = asyncio.create_task(self._sweep_forever(), name="cache-expiry-sweep")
        self._started = True
        logger.info(
            "Cache service started",
            stage=Stage.INITIALIZATION.value,
            execution_mode=self.cache.mode.value,
            remote_available=self.remote.is_available(),
            warming=self.scheduler is not None,
        )

    async def stop(self) -> None:
        """Stop everything started by start(), in reverse order."""
        if not self._started:
            return
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            await asyncio.gather(self._sweep_task, return_exceptions=True)
            self._sweep_task = None
        if self.scheduler is not None:
            await self.scheduler.stop()
        await self.cache.stop()
        await self.remote.close()
        self._started = False
        logger.info("Cache service stopped", stage=Stage.SHUTDOWN.value)

    async def warm_now(self, reason: str = "manual") -> WarmReport | None:
        """
        Trigger a warm run.

        Returns:
            The run's report, or None when warming is not configured or the
            trigger was skipped (in progress or cooldown)
        """
        if self.scheduler is None:
            return None
        return await self.scheduler.trigger(reason=reason)

    async def sweep_expired(self) -> int:
        """Drop expired local entries and, for the in-process store, ended windows."""
        removed = self.cache.cleanup_expired()
        if isinstance(self.counter_store, LocalCounterStore):
            removed += await self.counter_store.cleanup_expired()
        return removed

    async def _sweep_forever(self) -> None:
        # Same cadence as the warming scheduler.
        interval = self.settings.warming.CACHE_WARMING_INTERVAL
        while True:
            await asyncio.sleep(interval)
            await self.sweep_expired()


# Default instance used by the HTTP application
_service: CacheService | None = None


def get_cache_service() -> CacheService:
    """Get (or build) the default service for the HTTP application."""
    global _service
    if _service is None:
        _service = CacheService()
    return _service


def set_cache_service(service: CacheService | None) -> None:
    """Replace the default service (tests, custom wiring)."""
    global _service
    _service = service
