"""
Unit Tests for the Cache Operation Log

Tests the ring buffer and the statistics derived from it.
"""

import pytest

from campus_cache.core.config.constants import CacheOperation, CacheResult, CacheTier
from campus_cache.infrastructure.cache.operation_log import CacheOperationLog, key_prefix

GET = CacheOperation.GET
HIT, MISS = CacheResult.HIT, CacheResult.MISS
LOCAL, REMOTE = CacheTier.LOCAL, CacheTier.REMOTE


@pytest.mark.unit
class TestRingBuffer:
    def test_capacity_drops_oldest(self, clock):
        log = CacheOperationLog(capacity=3, clock=clock)

        for i in range(5):
            log.record(GET, f"school:{i}", MISS, LOCAL, 0.1)

        assert len(log) == 3
        assert [entry.key for entry in log.recent(10)] == ["school:2", "school:3", "school:4"]

    def test_recent_non_positive_limit(self, clock):
        log = CacheOperationLog(clock=clock)
        log.record(GET, "school:1", MISS, LOCAL, 0.1)

        assert log.recent(0) == []

    def test_entry_to_dict(self, clock):
        log = CacheOperationLog(clock=clock)

        entry = log.record(GET, "school:1", HIT, None, 0.12345, error=None)

        assert entry.to_dict() == {
            "timestamp": clock(),
            "operation": "GET",
            "key": "school:1",
            "result": "HIT",
            "tier": None,
            "duration_ms": 0.123,
            "error": None,
        }

    def test_forwards_to_metrics(self, clock, mock_metrics_collector):
        log = CacheOperationLog(metrics=mock_metrics_collector, clock=clock)

        log.record(GET, "school:1", HIT, LOCAL, 0.2)

        mock_metrics_collector.record_cache_operation.assert_called_once_with(
            "GET", "HIT", "local", pytest.approx(0.0002)
        )


@pytest.mark.unit
class TestHitRate:
    """hits / (hits + misses) * 100 over the sample."""

    def test_counts_only_hits_and_misses(self, clock):
        log = CacheOperationLog(clock=clock)
        log.record(GET, "school:1", HIT, LOCAL, 0.1)
        log.record(GET, "school:1", HIT, REMOTE, 0.1)
        log.record(GET, "school:2", MISS, REMOTE, 0.1)
        log.record(CacheOperation.SET, "school:2", CacheResult.SUCCESS, LOCAL, 0.1)
        log.record(CacheOperation.GET_OR_SET, "admin:stats:global", CacheResult.STALE_HIT, LOCAL, 0.1)

        report = log.hit_rate()

        assert report.total == 5
        assert (report.hits, report.misses, report.stale_hits) == (2, 1, 1)
        assert report.hit_rate == pytest.approx(66.666, rel=1e-3)
        assert report.by_tier == {
            "remote": {"hits": 1, "misses": 1},
            "local": {"hits": 1, "misses": 0},
        }
        assert report.by_key["school:2"] == {"hits": 0, "misses": 1, "hit_rate": 0.0}

    def test_empty_log(self, clock):
        report = CacheOperationLog(clock=clock).hit_rate()

        assert report.hit_rate == 0
        assert report.total == 0

    def test_sample_limits_window(self, clock):
        log = CacheOperationLog(clock=clock)
        log.record(GET, "school:1", MISS, LOCAL, 0.1)
        log.record(GET, "school:1", HIT, LOCAL, 0.1)

        assert log.hit_rate(sample=1).hit_rate == 100.0


@pytest.mark.unit
class TestEndpointStats:
    def test_grouped_by_key_prefix(self, clock):
        log = CacheOperationLog(clock=clock)
        log.record(GET, "admin:stats:global", HIT, LOCAL, 1.0)
        log.record(GET, "admin:stats:global", MISS, REMOTE, 3.0)
        log.record(GET, "admin:stats:other", CacheResult.ERROR, REMOTE, 2.0)

        stats = log.endpoint_stats()

        assert stats == {
            "admin:stats": {"hits": 1, "misses": 1, "errors": 1, "operations": 3, "avg_duration_ms": 2.0}
        }

    @pytest.mark.parametrize(
        "key, prefix",
        [("admin:stats:global", "admin:stats"), ("school:42", "school:42"), ("logos", "logos")],
    )
    def test_key_prefix(self, key, prefix):
        assert key_prefix(key) == prefix
