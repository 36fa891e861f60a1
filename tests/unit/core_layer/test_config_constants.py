"""
Unit Tests for Configuration Constants

Tests key builders, stale-copy eligibility, TTL classes and execution mode
detection.
"""

import pytest

from campus_cache.core.config.constants import (
    CacheKeys,
    CacheTTL,
    ExecutionMode,
    detect_execution_mode,
    is_stale_eligible,
    stale_key,
)
from tests.test_fixtures.cache_factory import make_settings


@pytest.mark.unit
class TestCacheKeys:
    """Test key conventions."""

    def test_entity_keys(self):
        assert CacheKeys.school("42") == "school:42"
        assert CacheKeys.course("c1") == "course:c1"
        assert CacheKeys.course_metadata("c1") == "course:metadata:c1"
        assert CacheKeys.profile("u1") == "profile:u1"
        assert CacheKeys.role("u1") == "role:u1"

    def test_composite_keys(self):
        assert CacheKeys.student_courses("s1", "sch1", "5") == "student:courses:s1:sch1:5"
        assert CacheKeys.teacher_classes("t1") == "teacher:classes:t1"
        assert CacheKeys.teacher_classes("t1", "sch1") == "teacher:classes:t1:sch1"

    def test_dashboard_keys(self):
        assert CacheKeys.admin_stats() == "admin:stats:global"
        assert CacheKeys.school_admin_stats("9") == "school-admin:stats:9"
        assert CacheKeys.student_dashboard("s1") == "student:dashboard:s1"
        assert CacheKeys.teacher_dashboard("t1") == "teacher:dashboard:t1"


@pytest.mark.unit
class TestStaleEligibility:
    """Only dashboard/stats-shaped keys keep a stale copy."""

    @pytest.mark.parametrize(
        "key",
        ["admin:stats:global", "school-admin:stats:9", "student:dashboard:s1", "school:stats:1"],
    )
    def test_eligible(self, key):
        assert is_stale_eligible(key)

    @pytest.mark.parametrize("key", ["school:42", "profile:u1", "logos:homepage"])
    def test_not_eligible(self, key):
        assert not is_stale_eligible(key)

    def test_stale_copy_never_gets_its_own_stale_copy(self):
        key = stale_key("admin:stats:global")

        assert key == "admin:stats:global:stale"
        assert not is_stale_eligible(key)


@pytest.mark.unit
class TestCacheTTL:
    def test_reads_overrides_from_settings(self):
        ttl = CacheTTL.from_settings(make_settings(CACHE_TTL_DASHBOARD_STATS=42))

        assert ttl.DASHBOARD_STATS == 42
        assert ttl.MEDIUM == 300


@pytest.mark.unit
class TestExecutionModeDetection:
    """Test tier order policy resolution."""

    def test_explicit_setting_wins(self):
        assert detect_execution_mode("long_lived", {"VERCEL": "1"}) is ExecutionMode.LONG_LIVED
        assert detect_execution_mode("request_scoped", {}) is ExecutionMode.REQUEST_SCOPED

    @pytest.mark.parametrize(
        "environ",
        [
            {"VERCEL": "1"},
            {"AWS_LAMBDA_FUNCTION_NAME": "dashboard-api"},
            {"NEXT_RUNTIME": "edge"},
            {"FUNCTIONS_WORKER_RUNTIME": "python"},
        ],
    )
    def test_auto_detects_serverless(self, environ):
        assert detect_execution_mode("auto", environ) is ExecutionMode.REQUEST_SCOPED

    def test_auto_defaults_to_long_lived(self):
        assert detect_execution_mode("auto", {"VERCEL": "0"}) is ExecutionMode.LONG_LIVED
