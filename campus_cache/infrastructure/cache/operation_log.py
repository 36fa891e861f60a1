"""
Cache Operation Log

Fixed-capacity ring buffer of recent cache operations. Hit rates and
per-prefix statistics are derived from it on demand; nothing here is read
back into the cache hot path.

STAGE-2.4: Cache observability
"""

import time
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass, field

from campus_cache.core.config.constants import CacheOperation, CacheResult, CacheTier
from campus_cache.infrastructure.monitoring.metrics_collector import MetricsCollector


@dataclass(frozen=True)
class CacheOperationLogEntry:
    timestamp: float
    operation: CacheOperation
    key: str
    result: CacheResult
    tier: CacheTier | None
    duration_ms: float
    error: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["operation"] = self.operation.value
        data["result"] = self.result.value
        data["tier"] = self.tier.value if self.tier else None
        return data


@dataclass
class HitRateReport:
    total: int
    hits: int
    misses: int
    stale_hits: int
    hit_rate: float
    by_tier: dict[str, dict[str, int]] = field(default_factory=dict)
    by_key: dict[str, dict[str, float]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def _rate(hits: int, misses: int) -> float:
    lookups = hits + misses
    return (hits / lookups) * 100 if lookups else 0.0


def key_prefix(key: str) -> str:
    """First two ``:`` segments: "admin:stats:global" -> "admin:stats"."""
    return ":".join(key.split(":")[:2])


class CacheOperationLog:
    """
    Ring buffer of CacheOperationLogEntry.

    Appends are synchronous; the oldest entry is dropped when full.

    Usage:
        log = CacheOperationLog(capacity=1000)
        log.record(CacheOperation.GET, "school:1", CacheResult.HIT, CacheTier.LOCAL, 0.2)
        log.hit_rate().hit_rate
    """

    def __init__(
        self,
        capacity: int = 1000,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._entries: deque[CacheOperationLogEntry] = deque(maxlen=capacity)
        self._metrics = metrics
        self._clock = clock

    def record(
        self,
        operation: CacheOperation,
        key: str,
        result: CacheResult,
        tier: CacheTier | None,
        duration_ms: float,
        error: str | None = None,
    ) -> CacheOperationLogEntry:
        entry = CacheOperationLogEntry(
            timestamp=self._clock(),
            operation=operation,
            key=key,
            result=result,
            tier=tier,
            duration_ms=round(duration_ms, 3),
            error=error,
        )
        self._entries.append(entry)
        if self._metrics:
            self._metrics.record_cache_operation(
                operation.value, result.value, tier.value if tier else "none", duration_ms / 1000
            )
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def recent(self, limit: int = 50) -> list[CacheOperationLogEntry]:
        """Most recent entries, oldest first."""
        if limit <= 0:
            return []
        return list(self._entries)[-limit:]

    def hit_rate(self, sample: int = 1000) -> HitRateReport:
        """
        Hit rate over the last ``sample`` entries.

        hit_rate = hits / (hits + misses) * 100, 0 when there were no lookups.
        Stale hits are reported separately and count in neither term.
        """
        entries = self.recent(sample)
        hits = misses = stale_hits = 0
        by_tier: dict[str, dict[str, int]] = {
            CacheTier.REMOTE.value: {"hits": 0, "misses": 0},
            CacheTier.LOCAL.value: {"hits": 0, "misses": 0},
        }
        per_key: dict[str, list[int]] = {}

        for entry in entries:
            if entry.result is CacheResult.STALE_HIT:
                stale_hits += 1
                continue
            if entry.result not in (CacheResult.HIT, CacheResult.MISS):
                continue

            is_hit = entry.result is CacheResult.HIT
            hits += is_hit
            misses += not is_hit

            if entry.tier is not None and entry.tier.value in by_tier:
                by_tier[entry.tier.value]["hits" if is_hit else "misses"] += 1

            counts = per_key.setdefault(entry.key, [0, 0])
            counts[0 if is_hit else 1] += 1

        by_key = {
            key: {"hits": h, "misses": m, "hit_rate": round(_rate(h, m), 2)}
            for key, (h, m) in per_key.items()
        }
        return HitRateReport(
            total=len(entries),
            hits=hits,
            misses=misses,
            stale_hits=stale_hits,
            hit_rate=_rate(hits, misses),
            by_tier=by_tier,
            by_key=by_key,
        )

    def endpoint_stats(self) -> dict[str, dict[str, float]]:
        """Counts and average latency grouped by key prefix."""
        grouped: dict[str, dict[str, float]] = {}
        for entry in self._entries:
            stats = grouped.setdefault(
                key_prefix(entry.key),
                {"hits": 0, "misses": 0, "errors": 0, "operations": 0, "total_ms": 0.0},
            )
            stats["operations"] += 1
            stats["total_ms"] += entry.duration_ms
            if entry.result is CacheResult.HIT:
                stats["hits"] += 1
            elif entry.result is CacheResult.MISS:
                stats["misses"] += 1
            elif entry.result is CacheResult.ERROR:
                stats["errors"] += 1

        for stats in grouped.values():
            total_ms = stats.pop("total_ms")
            stats["avg_duration_ms"] = round(total_ms / stats["operations"], 3)
        return grouped

    def clear(self) -> None:
        self._entries.clear()
