"""
Pytest Configuration and Shared Test Fixtures

This module provides reusable fixtures for all tests. All fixtures defined
here are automatically available to all test files.
"""

import os
import sys
from unittest.mock import MagicMock

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tests.test_fixtures.cache_factory import (
    FakeClock,
    FakeRemoteCache,
    make_cache_manager,
    make_settings,
)

# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings():
    """Settings isolated from the environment (remote tier disabled)."""
    return make_settings()


@pytest.fixture
def mock_metrics_collector():
    """MetricsCollector stand-in that records calls without touching Prometheus."""
    from campus_cache.infrastructure.monitoring.metrics_collector import MetricsCollector

    return MagicMock(spec=MetricsCollector)


# ============================================================================
# Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def clock():
    """Controllable clock shared by every component of a test."""
    return FakeClock()


@pytest.fixture
def remote(clock):
    """Available in-memory remote tier."""
    return FakeRemoteCache(clock)


@pytest.fixture
def unavailable_remote(clock):
    """Remote tier that reports itself unavailable."""
    return FakeRemoteCache(clock, available=False)


@pytest.fixture
async def cache_manager(remote):
    """Long-lived facade over the in-memory remote; refresh workers stopped on teardown."""
    manager = make_cache_manager(remote)
    yield manager
    await manager.stop()


@pytest.fixture
async def request_scoped_cache_manager(remote):
    from campus_cache.core.config.constants import ExecutionMode

    manager = make_cache_manager(remote, mode=ExecutionMode.REQUEST_SCOPED)
    yield manager
    await manager.stop()


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop process-wide singletons between tests."""
    import campus_cache.core.config.settings as settings_module
    import campus_cache.service as service_module

    yield
    settings_module._settings = None
    service_module._service = None
