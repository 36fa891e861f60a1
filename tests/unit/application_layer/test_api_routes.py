"""
Unit Tests for API Routes

Tests the HTTP surface against a CacheService built around the in-memory
remote tier. Requests run without the lifespan unless a test needs it.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from campus_cache.application.app import create_app
from campus_cache.infrastructure.monitoring.metrics_collector import MetricsCollector
from campus_cache.rate_limiting import LocalCounterStore
from campus_cache.service import CacheService
from tests.test_fixtures.cache_factory import FakeRemoteCache, make_settings

API = "/api/v1"


def build_service(remote=None, data_source=None, **settings_overrides):
    settings = make_settings(**settings_overrides)
    remote = remote or FakeRemoteCache()
    return CacheService(
        settings,
        remote=remote,
        counter_store=LocalCounterStore(clock=remote.clock),
        data_source=data_source,
        metrics=MetricsCollector(settings),
        clock=remote.clock,
    )


@pytest.fixture
def service():
    return build_service()


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


@pytest.fixture
def data_source():
    source = MagicMock()
    source.fetch_admin_stats = AsyncMock(return_value={"schools": 3})
    source.list_active_school_ids = AsyncMock(return_value=[])
    source.list_active_student_ids = AsyncMock(return_value=[])
    source.list_active_teacher_ids = AsyncMock(return_value=[])
    return source


@pytest.mark.unit
class TestHealthEndpoint:
    """Test suite for the health endpoint."""

    def test_healthy_with_remote(self, client):
        response = client.get(f"{API}/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["execution_mode"] == "long_lived"
        assert data["components"]["remote"]["status"] == "healthy"
        assert data["components"]["warming"] == {"enabled": False, "running": False}

    def test_degraded_without_remote(self):
        service = build_service(remote=FakeRemoteCache(available=False))

        response = TestClient(create_app(service)).get(f"{API}/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    def test_request_id_echoed(self, client):
        response = client.get(f"{API}/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated(self, client):
        response = client.get(f"{API}/health")
        assert response.headers["X-Request-ID"]


@pytest.mark.unit
class TestCacheMonitorEndpoint:
    def test_reports_hit_rate_and_top_keys(self, client, service):
        async def traffic():
            await service.cache.set("school:1", {"name": "A"}, ttl=60)
            await service.cache.get("school:1")
            await service.cache.get("school:1")
            await service.cache.get("school:2")

        asyncio.run(traffic())

        response = client.get(f"{API}/admin/cache-monitor")

        assert response.status_code == 200
        data = response.json()
        assert data["total_hits"] == 2
        assert data["total_misses"] == 1
        assert data["hit_rate"] == pytest.approx(66.67)
        assert data["by_tier"]["local"] == {"hits": 2, "misses": 0}
        assert data["top_keys"][0]["key"] == "school:1"
        assert data["remote_available"] is True

    def test_empty_log(self, client):
        data = client.get(f"{API}/admin/cache-monitor").json()

        assert data["hit_rate"] == 0
        assert data["top_keys"] == []


@pytest.mark.unit
class TestCacheStatusEndpoint:
    """GET /cache/status is rate limited with the READ preset."""

    @pytest.fixture
    def limited_client(self):
        service = build_service(RATE_LIMIT_PRESETS={"READ": {"max_requests": 2, "window_seconds": 60}})
        return TestClient(create_app(service))

    def test_status_payload(self, client, service):
        asyncio.run(service.cache.get("admin:stats:global"))

        response = client.get(f"{API}/cache/status")

        assert response.status_code == 200
        data = response.json()
        assert data["remote"]["available"] is True
        assert data["cache"]["execution_mode"] == "long_lived"
        assert data["operations"][0]["key"] == "admin:stats:global"
        assert data["by_pattern"]["admin:stats"]["misses"] == 1

    def test_admitted_response_carries_rate_limit_headers(self, limited_client):
        response = limited_client.get(f"{API}/cache/status")

        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Remaining"] == "1"
        assert "Retry-After" not in response.headers

    def test_rejects_when_budget_spent(self, limited_client):
        for _ in range(2):
            assert limited_client.get(f"{API}/cache/status").status_code == 200

        response = limited_client.get(f"{API}/cache/status")

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit_exceeded"
        assert response.json()["retry_after"] == 60
        assert response.headers["Retry-After"] == "60"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert "X-RateLimit-Reset" in response.headers

    def test_budget_is_per_identifier(self, limited_client):
        for _ in range(3):
            limited_client.get(f"{API}/cache/status", headers={"X-User-ID": "a"})

        response = limited_client.get(f"{API}/cache/status", headers={"X-User-ID": "b"})

        assert response.status_code == 200


@pytest.mark.unit
class TestInvalidateEndpoint:
    def test_invalidate_key(self, client, service):
        asyncio.run(service.cache.set("school:1", 1, ttl=60))

        response = client.post(f"{API}/admin/cache/invalidate", json={"key": "school:1"})

        assert response.status_code == 200
        assert response.json() == {"invalidated": "school:1", "local_removed": None}
        assert service.cache.local.get("school:1") is None

    def test_invalidate_pattern(self, client, service):
        async def seed():
            await service.cache.set("school:1", 1, ttl=60)
            await service.cache.set("school:2", 2, ttl=60)

        asyncio.run(seed())

        response = client.post(f"{API}/admin/cache/invalidate", json={"pattern": "school:*"})

        assert response.json() == {"invalidated": "school:*", "local_removed": 2}

    @pytest.mark.parametrize("body", [{}, {"key": "a", "pattern": "b*"}, {"key": ""}])
    def test_requires_exactly_one_target(self, client, body):
        response = client.post(f"{API}/admin/cache/invalidate", json=body)
        assert response.status_code == 422


@pytest.mark.unit
class TestWarmEndpoint:
    def test_not_configured(self, client):
        response = client.post(f"{API}/admin/cache/warm")
        assert response.status_code == 404

    def test_manual_run_then_cooldown(self, data_source):
        service = build_service(data_source=data_source, CACHE_WARMING_COOLDOWN=300)
        client = TestClient(create_app(service))

        first = client.post(f"{API}/admin/cache/warm")
        second = client.post(f"{API}/admin/cache/warm")

        assert first.status_code == 200
        assert first.json()["warmed"] == 1
        assert first.json()["timed_out"] is False
        assert second.status_code == 409


@pytest.mark.unit
class TestMetricsEndpoint:
    def test_prometheus_exposition(self, client, service):
        asyncio.run(service.cache.get("school:1"))

        response = client.get(f"{API}/admin/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "campus_cache_operations_total" in response.text


@pytest.mark.unit
class TestLifespan:
    def test_service_started_and_stopped(self, service):
        app = create_app(service)

        with TestClient(app) as client:
            assert service.started
            assert client.get(f"{API}/health").status_code == 200

        assert not service.started
