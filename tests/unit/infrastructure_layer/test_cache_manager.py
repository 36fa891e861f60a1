"""
Unit Tests for CacheManager

Tests tier selection per execution mode, remote repopulation, cache-aside
reads, stale-while-revalidate, invalidation and the derived statistics.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from campus_cache.core.config.constants import CacheKeys, ExecutionMode
from campus_cache.core.exceptions import CacheSerializationError
from campus_cache.infrastructure.cache.cache_manager import CacheManager
from campus_cache.infrastructure.cache.redis_client import RedisRemoteCache
from tests.test_fixtures.cache_factory import FakeRemoteCache, make_cache_manager, make_settings


def results(manager, key=None):
    return [
        (op["operation"], op["result"], op["tier"])
        for op in manager.get_cache_operations(1000)
        if key is None or op["key"] == key
    ]


@pytest.mark.unit
class TestGetOrSet:
    """Cache-aside reads."""

    @pytest.mark.asyncio
    async def test_miss_calls_fetcher_once_and_stores_both_tiers(self, cache_manager, remote):
        fetcher = AsyncMock(return_value={"name": "Springfield High"})

        value = await cache_manager.get_or_set("school:1", fetcher, ttl=60)

        assert value == {"name": "Springfield High"}
        fetcher.assert_awaited_once()
        assert "school:1" in remote.values
        assert cache_manager.local.get("school:1") is not None

    @pytest.mark.asyncio
    async def test_hit_never_calls_fetcher(self, cache_manager):
        await cache_manager.set("school:1", {"name": "A"}, ttl=60)
        fetcher = AsyncMock(return_value={"name": "B"})

        value = await cache_manager.get_or_set("school:1", fetcher, ttl=60)

        assert value == {"name": "A"}
        fetcher.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetcher_error_propagates_and_nothing_is_stored(self, cache_manager, remote):
        fetcher = AsyncMock(side_effect=ValueError("origin down"))

        with pytest.raises(ValueError, match="origin down"):
            await cache_manager.get_or_set("school:1", fetcher, ttl=60)

        assert cache_manager.local.size == 0
        assert remote.values == {}

    @pytest.mark.asyncio
    async def test_default_ttl_is_medium(self, cache_manager, clock):
        await cache_manager.get_or_set("school:1", AsyncMock(return_value=1))

        assert cache_manager.local.get_entry("school:1").ttl == 300

    @pytest.mark.asyncio
    async def test_concurrent_misses_both_complete(self, cache_manager):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)
            return {"n": calls}

        first, second = await asyncio.gather(
            cache_manager.get_or_set("school:1", fetch, ttl=60),
            cache_manager.get_or_set("school:1", fetch, ttl=60),
        )

        assert 1 <= calls <= 2
        assert first in ({"n": 1}, {"n": 2})
        assert second in ({"n": 1}, {"n": 2})
        assert await cache_manager.get("school:1") is not None


@pytest.mark.unit
class TestExpiry:
    @pytest.mark.asyncio
    async def test_value_absent_once_ttl_elapsed(self, cache_manager, clock):
        await cache_manager.set("school:1", {"name": "A"}, ttl=60)

        clock.advance(59)
        assert await cache_manager.get("school:1") == {"name": "A"}

        clock.advance(1)
        assert await cache_manager.get("school:1") is None

    @pytest.mark.asyncio
    async def test_remote_hit_repopulates_local_with_remaining_ttl(self, cache_manager, clock):
        await cache_manager.set("school:1", {"name": "A"}, ttl=60)
        cache_manager.local.clear()
        clock.advance(20)

        assert await cache_manager.get("school:1") == {"name": "A"}

        entry = cache_manager.local.get_entry("school:1")
        assert entry.ttl == pytest.approx(40)

    @pytest.mark.asyncio
    async def test_omitted_ttl_uses_default(self, cache_manager):
        await cache_manager.set("school:1", 1)

        entry = cache_manager.local.get_entry("school:1")
        assert entry.ttl == make_settings().cache.CACHE_TTL_MEDIUM

    @pytest.mark.parametrize("ttl", [0, -5])
    @pytest.mark.asyncio
    async def test_non_positive_ttl_rejected(self, cache_manager, ttl):
        fetcher = AsyncMock(return_value=1)

        with pytest.raises(ValueError):
            await cache_manager.set("school:1", 1, ttl=ttl)
        with pytest.raises(ValueError):
            await cache_manager.get_or_set("school:1", fetcher, ttl=ttl)

        fetcher.assert_not_awaited()
        assert cache_manager.local.get("school:1") is None

    @pytest.mark.asyncio
    async def test_contains_counts_cached_null(self, cache_manager, clock):
        await cache_manager.set("school:1", None, ttl=60)

        assert await cache_manager.contains("school:1")
        assert not await cache_manager.contains("school:2")
        assert await cache_manager.get_or_set("school:1", AsyncMock(return_value=1)) is None

        clock.advance(60)
        assert not await cache_manager.contains("school:1")


@pytest.mark.unit
class TestTierOrder:
    """Execution mode decides which tier is consulted first."""

    @pytest.mark.asyncio
    async def test_long_lived_local_hit_does_not_touch_remote(self, cache_manager, remote):
        await cache_manager.set("school:1", {"name": "A"}, ttl=60)
        remote.calls.clear()

        await cache_manager.get("school:1")

        assert remote.calls_for("get") == []
        assert results(cache_manager, "school:1")[-1] == ("GET", "HIT", "local")

    @pytest.mark.asyncio
    async def test_request_scoped_consults_remote_first(self, request_scoped_cache_manager, remote):
        manager = request_scoped_cache_manager
        await manager.set("school:1", {"name": "A"}, ttl=60)
        remote.calls.clear()

        assert await manager.get("school:1") == {"name": "A"}

        assert remote.calls_for("get") == ["school:1"]
        assert results(manager, "school:1")[-1] == ("GET", "HIT", "remote")

    @pytest.mark.asyncio
    async def test_request_scoped_falls_back_to_local(self, request_scoped_cache_manager, remote):
        manager = request_scoped_cache_manager
        await manager.set("school:1", {"name": "A"}, ttl=60)
        remote.values.clear()

        assert await manager.get("school:1") == {"name": "A"}
        assert results(manager, "school:1")[-1] == ("GET", "HIT", "local")

    @pytest.mark.asyncio
    async def test_miss_is_tagged_with_last_tier_consulted(self, cache_manager):
        await cache_manager.get("school:404")

        assert results(cache_manager, "school:404") == [("GET", "MISS", "remote")]


@pytest.mark.unit
class TestRemoteFailures:
    """The remote tier is never required for correctness."""

    @pytest.mark.asyncio
    async def test_remote_error_is_logged_and_treated_as_miss(self, cache_manager, remote):
        remote.fail("get")

        assert await cache_manager.get("school:1") is None
        assert results(cache_manager, "school:1") == [
            ("GET", "ERROR", "remote"),
            ("GET", "MISS", "remote"),
        ]

    @pytest.mark.asyncio
    async def test_unbuildable_redis_client_is_a_miss(self, mock_metrics_collector):
        settings = make_settings(
            REDIS_ENABLED=True, REDIS_URL="rediss://cache.example.com:6379", REDIS_TOKEN="tok",
            REDIS_RETRY_BASE_DELAY=0,
        )
        remote = RedisRemoteCache(settings, metrics=mock_metrics_collector)
        remote._connection.get_client = MagicMock(side_effect=ValueError("unsupported scheme"))
        manager = CacheManager(remote, settings, mode=ExecutionMode.LONG_LIVED, metrics=mock_metrics_collector)

        assert await manager.get("school:1") is None
        assert await manager.get_or_set("school:1", AsyncMock(return_value={"id": 1}), ttl=60) == {"id": 1}
        assert manager.local.get("school:1") is not None

    @pytest.mark.asyncio
    async def test_remote_write_failure_still_writes_local(self, cache_manager, remote):
        remote.fail("set")

        await cache_manager.set("school:1", {"name": "A"}, ttl=60)

        assert cache_manager.local.get("school:1") is not None
        assert ("SET", "ERROR", "remote") in results(cache_manager, "school:1")
        assert ("SET", "SUCCESS", "local") in results(cache_manager, "school:1")

    @pytest.mark.asyncio
    async def test_unavailable_remote_uses_local_only(self, unavailable_remote):
        manager = make_cache_manager(unavailable_remote)

        await manager.set("school:1", {"name": "A"}, ttl=60)

        assert await manager.get("school:1") == {"name": "A"}
        assert unavailable_remote.calls == []

    @pytest.mark.asyncio
    async def test_malformed_remote_payload_is_a_miss(self, request_scoped_cache_manager, remote):
        remote.values["school:1"] = ("not-an-envelope", None)

        assert await request_scoped_cache_manager.get("school:1") is None
        assert ("GET", "ERROR", "remote") in results(request_scoped_cache_manager, "school:1")

    @pytest.mark.asyncio
    async def test_write_verification_records_warning(self, remote):
        manager = make_cache_manager(remote, settings=make_settings(CACHE_VERIFY_WRITES=True))
        remote.fail("get")

        await manager.get_or_set("school:1", AsyncMock(return_value=1), ttl=60)

        assert ("SET", "WARNING", "remote") in results(manager, "school:1")
        await manager.stop()

    @pytest.mark.asyncio
    async def test_write_verification_off_by_default(self, cache_manager, remote):
        remote.fail("get")

        await cache_manager.get_or_set("school:1", AsyncMock(return_value=1), ttl=60)

        assert ("SET", "WARNING", "remote") not in results(cache_manager, "school:1")

    @pytest.mark.asyncio
    async def test_unserializable_value_raises(self, cache_manager):
        with pytest.raises(CacheSerializationError):
            await cache_manager.set("school:1", object(), ttl=60)


@pytest.mark.unit
class TestStaleWhileRevalidate:
    """Dashboard/stats keys may be served stale while a refresh runs."""

    @pytest.mark.asyncio
    async def test_set_writes_stale_copy_with_double_ttl(self, cache_manager, remote):
        key = CacheKeys.admin_stats()

        await cache_manager.set(key, {"schools": 3}, ttl=60)

        assert cache_manager.local.get_entry(f"{key}:stale").ttl == 120
        assert f"{key}:stale" in remote.values

    @pytest.mark.asyncio
    async def test_non_dashboard_key_gets_no_stale_copy(self, cache_manager):
        await cache_manager.set("school:1", 1, ttl=60)
        assert cache_manager.local.get("school:1:stale") is None

    @pytest.mark.asyncio
    async def test_serves_stale_without_waiting_for_refresh(self, cache_manager, clock):
        key = CacheKeys.admin_stats()
        await cache_manager.set(key, {"version": 1}, ttl=60)
        clock.advance(60)

        gate = asyncio.Event()

        async def slow_fetch():
            await gate.wait()
            return {"version": 2}

        value = await cache_manager.get_or_set(key, slow_fetch, ttl=60, stale_while_revalidate=True)

        assert value == {"version": 1}
        assert cache_manager.refresher.is_pending(key)
        assert ("GET_OR_SET", "STALE_HIT", "local") in results(cache_manager, key)

        gate.set()
        await cache_manager.wait_for_background_refreshes()

        assert await cache_manager.get(key) == {"version": 2}

    @pytest.mark.asyncio
    async def test_no_stale_copy_fetches_synchronously(self, cache_manager):
        fetcher = AsyncMock(return_value={"version": 1})

        value = await cache_manager.get_or_set(
            CacheKeys.admin_stats(), fetcher, ttl=60, stale_while_revalidate=True
        )

        assert value == {"version": 1}
        fetcher.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_full_refresh_queue_falls_back_to_synchronous_fetch(self, cache_manager, clock):
        key = CacheKeys.admin_stats()
        await cache_manager.set(key, {"version": 1}, ttl=60)
        clock.advance(60)
        cache_manager.refresher.submit = MagicMock(return_value=False)
        fetcher = AsyncMock(return_value={"version": 2})

        value = await cache_manager.get_or_set(key, fetcher, ttl=60, stale_while_revalidate=True)

        assert value == {"version": 2}
        fetcher.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_stale_copy(self, cache_manager, clock):
        key = CacheKeys.student_dashboard("s1")
        await cache_manager.set(key, {"version": 1}, ttl=60)
        clock.advance(60)

        value = await cache_manager.get_or_set(
            key, AsyncMock(side_effect=RuntimeError("origin down")), ttl=60,
            stale_while_revalidate=True,
        )
        await cache_manager.wait_for_background_refreshes()

        assert value == {"version": 1}
        assert cache_manager.refresher.stats.failed == 1
        assert cache_manager.local.get(f"{key}:stale") is not None


@pytest.mark.unit
class TestInvalidation:
    @pytest.mark.asyncio
    async def test_invalidate_removes_from_both_tiers(self, cache_manager, remote):
        await cache_manager.set("school:1", 1, ttl=60)

        await cache_manager.invalidate("school:1")

        assert await cache_manager.get("school:1") is None
        assert "school:1" not in remote.values

    @pytest.mark.asyncio
    async def test_invalidate_keeps_stale_copy_unless_asked(self, cache_manager):
        key = CacheKeys.admin_stats()
        await cache_manager.set(key, 1, ttl=60)

        await cache_manager.invalidate(key)
        assert cache_manager.local.get(f"{key}:stale") is not None

        await cache_manager.invalidate(key, include_stale=True)
        assert cache_manager.local.get(f"{key}:stale") is None

    @pytest.mark.asyncio
    async def test_invalidate_never_raises_on_remote_error(self, cache_manager, remote):
        await cache_manager.set("school:1", 1, ttl=60)
        remote.fail("delete")

        await cache_manager.invalidate("school:1")

        assert cache_manager.local.get("school:1") is None
        assert ("INVALIDATE", "ERROR", "remote") in results(cache_manager, "school:1")

    @pytest.mark.asyncio
    async def test_invalidate_pattern(self, cache_manager, remote):
        await cache_manager.set("school:1", 1, ttl=60)
        await cache_manager.set("school:2", 2, ttl=60)
        await cache_manager.set("course:1", 3, ttl=60)

        removed = await cache_manager.invalidate_pattern("school:*")

        assert removed == 2
        assert set(remote.values) == {"course:1"}
        assert await cache_manager.get("course:1") == 3

    @pytest.mark.asyncio
    async def test_clear_leaves_remote_untouched(self, cache_manager, remote):
        await cache_manager.set("school:1", 1, ttl=60)

        cache_manager.clear()

        assert cache_manager.local.size == 0
        assert "school:1" in remote.values

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, cache_manager, clock):
        await cache_manager.set("school:1", 1, ttl=10)
        await cache_manager.set("school:2", 2, ttl=100)
        clock.advance(10)

        assert cache_manager.cleanup_expired() == 1


@pytest.mark.unit
class TestMonitoring:
    @pytest.mark.asyncio
    async def test_hit_rate(self, cache_manager):
        await cache_manager.set("school:1", 1, ttl=60)
        await cache_manager.get("school:1")
        await cache_manager.get("school:2")

        report = cache_manager.get_cache_hit_rate()

        assert report.hits == 1
        assert report.misses == 1
        assert report.hit_rate == 50.0

    @pytest.mark.asyncio
    async def test_hit_rate_is_idempotent_and_bounded(self, cache_manager):
        for i in range(20):
            await cache_manager.get_or_set(f"school:{i % 5}", AsyncMock(return_value=i), ttl=60)

        first = cache_manager.get_cache_hit_rate()
        second = cache_manager.get_cache_hit_rate()

        assert first == second
        assert 0 <= first.hit_rate <= 100

    def test_hit_rate_without_lookups_is_zero(self, cache_manager):
        assert cache_manager.get_cache_hit_rate().hit_rate == 0

    @pytest.mark.asyncio
    async def test_get_cache_stats(self, cache_manager):
        await cache_manager.set("school:1", 1, ttl=60)
        await cache_manager.get("school:1")

        stats = cache_manager.get_cache_stats()

        assert stats["size"] == 1
        assert stats["total_hits"] == 1
        assert stats["hit_rate"] == 100.0
        assert stats["remote_available"] is True
        assert stats["execution_mode"] == ExecutionMode.LONG_LIVED.value
        assert "school:1" in stats["endpoint_stats"]

    @pytest.mark.asyncio
    async def test_get_cache_operations_limit(self, cache_manager):
        for i in range(10):
            await cache_manager.get(f"school:{i}")

        operations = cache_manager.get_cache_operations(limit=3)

        assert [op["key"] for op in operations] == ["school:7", "school:8", "school:9"]

    @pytest.mark.asyncio
    async def test_health_check(self, cache_manager):
        health = await cache_manager.health_check()

        assert health["status"] == "healthy"
        assert health["execution_mode"] == "long_lived"

    @pytest.mark.asyncio
    async def test_health_check_degraded_without_remote(self, unavailable_remote):
        manager = make_cache_manager(unavailable_remote)

        assert (await manager.health_check())["status"] == "degraded"
