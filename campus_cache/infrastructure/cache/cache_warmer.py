"""
Cache Warming

Architecture:
    WarmingScheduler (timer, run guard, cooldown, hard timeout)
        └── CacheWarmer (executes a warm plan against the CacheManager)

Algorithm (per candidate):
    1. get(key); present -> skipped
    2. absent -> await fetcher(), set(key, value, ttl) -> warmed
    3. fetcher/set failure -> failed (logged), the run continues

Groups of per-entity candidates run in fixed-size batches with
asyncio.gather(return_exceptions=True), so one entity never aborts a batch.

Run guards:
    - in-progress flag: overlapping triggers are skipped
    - cooldown: triggers closer than the cooldown to the previous run are skipped
    - hard timeout: the run stops being awaited, keeps running un-cancelled,
      and the flag is cleared so the next tick can proceed
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

from campus_cache.core.config.constants import Stage
from campus_cache.core.exceptions import CacheWarmingError
from campus_cache.core.logging.logger import get_logger
from campus_cache.infrastructure.cache.cache_manager import CacheManager
from campus_cache.infrastructure.monitoring.metrics_collector import MetricsCollector

logger = get_logger(__name__)


@dataclass
class WarmTarget:
    key: str
    fetcher: Callable[[], Awaitable[Any]]
    ttl: float


@dataclass
class WarmGroup:
    """Per-entity candidates warmed batch_size at a time."""

    name: str
    targets: list[WarmTarget]
    batch_size: int = 3


WarmPlan = Callable[[], Awaitable[Sequence[WarmTarget | WarmGroup]]]


@dataclass
class WarmReport:
    warmed: int = 0
    skipped: int = 0
    failed: int = 0
    duration_ms: float = 0.0
    timed_out: bool = False
    failed_keys: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class CacheWarmer:
    """
    Executes a warm plan.

    Usage:
        warmer = CacheWarmer(cache)
        report = await warmer.warm(plan)
    """

    def __init__(self, cache: CacheManager, metrics: MetricsCollector | None = None):
        self._cache = cache
        self._metrics = metrics

    async def warm(self, plan: WarmPlan) -> WarmReport:
        """
        STAGE-WARM.RUN: Resolve the plan and warm every candidate.

        Never raises for a failing candidate; a plan that cannot be resolved
        yields an empty report.
        """
        started = time.perf_counter()
        report = WarmReport()

        try:
            items = await plan()
        except Exception as e:
            error = CacheWarmingError.from_exception(e, message="Warm plan could not be resolved")
            logger.error("Cache warm plan failed", stage=Stage.WARM_RUN.value, **error.to_dict())
            report.duration_ms = round((time.perf_counter() - started) * 1000, 2)
            return report

        for item in items:
            if isinstance(item, WarmGroup):
                size = max(1, item.batch_size)
                for offset in range(0, len(item.targets), size):
                    await self._settle(item.targets[offset:offset + size], report)
            else:
                await self._settle([item], report)

        report.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        if self._metrics:
            self._metrics.record_warm_keys(report.warmed, report.skipped, report.failed)
        logger.info(
            "Cache warm run completed",
            stage=Stage.WARM_RUN.value,
            warmed=report.warmed,
            skipped=report.skipped,
            failed=report.failed,
            duration_ms=report.duration_ms,
        )
        return report

    async def warm_target(self, target: WarmTarget) -> bool:
        """
        Warm one key.

        Returns:
            True when the key was fetched and stored, False when already cached
        """
        if await self._cache.contains(target.key):
            return False
        value = await target.fetcher()
        await self._cache.set(target.key, value, target.ttl)
        return True

    async def _settle(self, targets: list[WarmTarget], report: WarmReport) -> None:
        results = await asyncio.gather(
            *(self.warm_target(target) for target in targets), return_exceptions=True
        )
        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                report.failed += 1
                report.failed_keys.append(target.key)
                logger.warning(
                    "Cache warm failed for key",
                    stage=Stage.WARM_RUN.value,
                    key=target.key,
                    error=str(result),
                    error_type=type(result).__name__,
                )
            elif result:
                report.warmed += 1
            else:
                report.skipped += 1


class WarmingScheduler:
    """
    Runs the warmer once at start and then on a fixed interval.

    Usage:
        scheduler = WarmingScheduler(warmer, plan, interval=300, cooldown=5, timeout=30)
        await scheduler.start()
        ...
        report = await scheduler.trigger(reason="manual")  # None when skipped
        await scheduler.stop()
    """

    def __init__(
        self,
        warmer: CacheWarmer,
        plan: WarmPlan,
        *,
        interval: float = 300.0,
        cooldown: float = 5.0,
        timeout: float = 30.0,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._warmer = warmer
        self._plan = plan
        self._interval = interval
        self._cooldown = cooldown
        self._timeout = timeout
        self._metrics = metrics
        self._clock = clock

        self._in_progress = False
        self._last_started: float | None = None
        self._last_report: WarmReport | None = None
        self._loop_task: asyncio.Task | None = None
        self._abandoned: set[asyncio.Task] = set()

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def last_report(self) -> WarmReport | None:
        return self._last_report

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def trigger(self, reason: str = "manual") -> WarmReport | None:
        """
        Run the warmer unless a run is in progress or the cooldown is active.

        Returns:
            The run's report, a timed_out report when the hard timeout fired,
            or None when the trigger was skipped
        """
        now = self._clock()
        if self._in_progress:
            self._skip(reason, "in_progress")
            return None
        if self._last_started is not None and now - self._last_started < self._cooldown:
            self._skip(reason, "cooldown")
            return None

        self._in_progress = True
        self._last_started = now
        task = asyncio.create_task(self._warmer.warm(self._plan), name="cache-warm-run")
        try:
            done, _ = await asyncio.wait({task}, timeout=self._timeout)
            if task in done:
                report = task.result()
                status = "completed"
            else:
                self._abandoned.add(task)
                task.add_done_callback(self._on_abandoned_done)
                report = WarmReport(duration_ms=round(self._timeout * 1000, 2), timed_out=True)
                status = "timed_out"
                logger.warning(
                    "Cache warm run exceeded timeout, no longer awaited",
                    stage=Stage.WARM_SCHEDULER.value,
                    timeout_seconds=self._timeout,
                    reason=reason,
                )
        finally:
            self._in_progress = False

        if self._metrics:
            self._metrics.record_warm_run(status)
        self._last_report = report
        return report

    async def start(self, run_immediately: bool = True) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(
            self._run_forever(run_immediately), name="cache-warm-scheduler"
        )
        logger.info(
            "Cache warming scheduler started",
            stage=Stage.WARM_SCHEDULER.value,
            interval_seconds=self._interval,
        )

    async def stop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None

        # Shutdown only: abandoned runs are cancelled here, never on timeout.
        for task in list(self._abandoned):
            task.cancel()
        await asyncio.gather(*self._abandoned, return_exceptions=True)
        self._abandoned.clear()
        logger.info("Cache warming scheduler stopped", stage=Stage.SHUTDOWN.value)

    async def _run_forever(self, run_immediately: bool) -> None:
        if not run_immediately:
            await asyncio.sleep(self._interval)
        while True:
            try:
                await self.trigger(reason="scheduled")
            except Exception as e:
                logger.error(
                    "Scheduled cache warm run crashed",
                    stage=Stage.WARM_SCHEDULER.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            await asyncio.sleep(self._interval)

    def _skip(self, reason: str, cause: str) -> None:
        if self._metrics:
            self._metrics.record_warm_run("skipped")
        logger.info(
            "Cache warm run skipped",
            stage=Stage.WARM_SCHEDULER.value,
            reason=reason,
            cause=cause,
        )

    def _on_abandoned_done(self, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Abandoned cache warm run failed",
                stage=Stage.WARM_SCHEDULER.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            report = task.result()
            logger.info(
                "Abandoned cache warm run finished",
                stage=Stage.WARM_SCHEDULER.value,
                warmed=report.warmed,
                failed=report.failed,
            )
