"""
Background Refresh Worker

Runs stale-while-revalidate refreshes off the request path.

Architecture:
    BackgroundRefreshWorker
        ├── asyncio.Queue (bounded; submissions never block)
        └── N worker tasks (each job's failure is logged and counted)

Flow:
    1. get_or_set serves a stale value and calls submit(key, job)
    2. submit drops the job when the queue is full or the key is already pending
    3. A worker awaits the job (fetch + write primary and stale slots)
    4. Success/failure lands in logs and Prometheus counters, never in a caller
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from campus_cache.core.config.constants import Stage
from campus_cache.core.logging.logger import get_logger
from campus_cache.infrastructure.monitoring.metrics_collector import MetricsCollector

logger = get_logger(__name__)


@dataclass
class RefreshConfig:
    """
    Attributes:
        queue_size: Maximum pending refreshes
        workers: Concurrent worker tasks
        shutdown_timeout_seconds: How long stop() waits for pending jobs
    """
    queue_size: int = 100
    workers: int = 2
    shutdown_timeout_seconds: float = 5.0


@dataclass
class RefreshJob:
    key: str
    run: Callable[[], Awaitable[None]]
    submitted_at: float = field(default_factory=time.monotonic)


@dataclass
class RefreshStats:
    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    dropped: int = 0
    last_error: str | None = None


class BackgroundRefreshWorker:
    """
    Bounded queue + worker pool for fire-and-forget refreshes.

    Workers are started lazily on the first submission, or explicitly with
    start(). stop() waits briefly for pending jobs, then cancels the workers.
    """

    def __init__(self, config: RefreshConfig | None = None, metrics: MetricsCollector | None = None):
        self._config = config or RefreshConfig()
        self._metrics = metrics
        self._queue: asyncio.Queue[RefreshJob] = asyncio.Queue(maxsize=self._config.queue_size)
        self._pending_keys: set[str] = set()
        self._workers: list[asyncio.Task] = []
        self.stats = RefreshStats()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._workers)

    @property
    def pending(self) -> int:
        return len(self._pending_keys)

    def is_pending(self, key: str) -> bool:
        return key in self._pending_keys

    async def start(self) -> None:
        self._ensure_started()

    def _ensure_started(self) -> None:
        if self.running:
            return
        self._workers = [
            asyncio.create_task(self._work(index), name=f"cache-refresh-{index}")
            for index in range(self._config.workers)
        ]
        logger.info("Background refresh workers started", stage=Stage.CACHE_REFRESH.value,
                    workers=self._config.workers, queue_size=self._config.queue_size)

    def submit(self, key: str, run: Callable[[], Awaitable[None]]) -> bool:
        """
        Queue a refresh without waiting for it.

        Must be called from a running event loop.

        Returns:
            False when the job was dropped (queue full or key already pending)
        """
        if key in self._pending_keys:
            logger.debug("Refresh already pending", stage=Stage.CACHE_REFRESH.value, key=key)
            return False

        self._ensure_started()
        try:
            self._queue.put_nowait(RefreshJob(key=key, run=run))
        except asyncio.QueueFull:
            self.stats.dropped += 1
            if self._metrics:
                self._metrics.record_background_refresh("dropped")
            logger.warning("Refresh queue full, dropping refresh",
                           stage=Stage.CACHE_REFRESH.value, key=key)
            return False

        self._pending_keys.add(key)
        self.stats.submitted += 1
        return True

    async def drain(self) -> None:
        """Wait until every queued refresh has finished."""
        await self._queue.join()

    async def stop(self) -> None:
        if not self._workers:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self._config.shutdown_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Refresh workers stopping with pending jobs",
                           stage=Stage.SHUTDOWN.value, pending=self.pending)

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Background refresh workers stopped", stage=Stage.SHUTDOWN.value)

    async def _work(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            started = time.perf_counter()
            try:
                await job.run()
            except Exception as e:
                # Worker survives; readers keep seeing the stale copy or a miss.
                self.stats.failed += 1
                self.stats.last_error = f"{type(e).__name__}: {e}"
                if self._metrics:
                    self._metrics.record_background_refresh("failed")
                logger.error(
                    "Background refresh failed",
                    stage=Stage.CACHE_REFRESH.value,
                    key=job.key,
                    worker=index,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                self.stats.succeeded += 1
                if self._metrics:
                    self._metrics.record_background_refresh("succeeded")
                logger.debug(
                    "Background refresh completed",
                    stage=Stage.CACHE_REFRESH.value,
                    key=job.key,
                    worker=index,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
            finally:
                self._pending_keys.discard(job.key)
                self._queue.task_done()
