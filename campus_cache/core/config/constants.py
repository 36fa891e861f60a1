"""
System Constants and Enumerations

Key conventions, TTL classes and the enumerations shared by the cache facade,
the operation log and the rate limiter.

Author: System Architect
Date: 2025-12-05
"""

import os
from collections.abc import Mapping
from enum import Enum

from campus_cache.core.config.settings import Settings, get_settings

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the ``stage`` field of log events.

    Format: {AREA}.{STEP}
    """

    INITIALIZATION = "0.0_INITIALIZATION"
    CACHE_GET = "CACHE.GET"
    CACHE_SET = "CACHE.SET"
    CACHE_GET_OR_SET = "CACHE.GET_OR_SET"
    CACHE_INVALIDATE = "CACHE.INVALIDATE"
    CACHE_REFRESH = "CACHE.REFRESH"
    REDIS_CONNECT = "REDIS.CONNECT"
    REDIS_RETRY = "REDIS.RETRY"
    REDIS_OPERATION = "REDIS.OPERATION"
    REDIS_HEALTH = "REDIS.HEALTH"
    RATE_LIMIT = "RATE_LIMIT.CHECK"
    RATE_LIMIT_FALLBACK = "RATE_LIMIT.FALLBACK"
    RATE_LIMIT_FAIL_OPEN = "RATE_LIMIT.FAIL_OPEN"
    WARM_RUN = "WARM.RUN"
    WARM_SCHEDULER = "WARM.SCHEDULER"
    SHUTDOWN = "9.0_SHUTDOWN"


# ============================================================================
# Execution Mode
# ============================================================================


class ExecutionMode(str, Enum):
    """
    Deployment model that decides the tier order of the cache facade.

    REQUEST_SCOPED: each invocation may be a cold, isolated process (serverless);
        the remote tier is consulted first.
    LONG_LIVED: a persistent process whose local tier stays warm; the local
        tier is consulted first.
    """

    REQUEST_SCOPED = "request_scoped"
    LONG_LIVED = "long_lived"


def detect_execution_mode(
    configured: str = "auto", environ: Mapping[str, str] | None = None
) -> ExecutionMode:
    """
    Resolve the execution mode once at startup.

    An explicit CACHE_EXECUTION_MODE wins; with ``auto`` the platform
    environment variables of common serverless runtimes are inspected.
    """
    if configured != "auto":
        return ExecutionMode(configured)

    env = os.environ if environ is None else environ
    if (
        env.get("VERCEL") == "1"
        or env.get("AWS_LAMBDA_FUNCTION_NAME")
        or env.get("NEXT_RUNTIME") == "edge"
        or env.get("FUNCTIONS_WORKER_RUNTIME")
    ):
        return ExecutionMode.REQUEST_SCOPED
    return ExecutionMode.LONG_LIVED


# ============================================================================
# Cache Operation Log vocabulary
# ============================================================================


class CacheOperation(str, Enum):
    GET = "GET"
    SET = "SET"
    GET_OR_SET = "GET_OR_SET"
    INVALIDATE = "INVALIDATE"
    INVALIDATE_PATTERN = "INVALIDATE_PATTERN"
    CLEAR = "CLEAR"


class CacheResult(str, Enum):
    HIT = "HIT"
    MISS = "MISS"
    STALE_HIT = "STALE_HIT"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    WARNING = "WARNING"


class CacheTier(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"
    ORIGIN = "origin"


# ============================================================================
# Key conventions
# ============================================================================

STALE_SUFFIX = ":stale"

# Keys containing one of these segments get a stale copy for
# stale-while-revalidate.
STALE_ELIGIBLE_SEGMENTS = (":dashboard:", ":stats:")


def is_stale_eligible(key: str) -> bool:
    """Return True for dashboard/stats-shaped keys that keep a stale copy."""
    if key.endswith(STALE_SUFFIX):
        return False
    return any(segment in key for segment in STALE_ELIGIBLE_SEGMENTS)


def stale_key(key: str) -> str:
    return f"{key}{STALE_SUFFIX}"


class CacheKeys:
    """Key builders used by route handlers and the warm plan."""

    @staticmethod
    def school(school_id: str) -> str:
        return f"school:{school_id}"

    @staticmethod
    def course(course_id: str) -> str:
        return f"course:{course_id}"

    @staticmethod
    def course_metadata(course_id: str) -> str:
        return f"course:metadata:{course_id}"

    @staticmethod
    def profile(user_id: str) -> str:
        return f"profile:{user_id}"

    @staticmethod
    def role(user_id: str) -> str:
        return f"role:{user_id}"

    @staticmethod
    def student_courses(student_id: str, school_id: str, grade: str) -> str:
        return f"student:courses:{student_id}:{school_id}:{grade}"

    @staticmethod
    def teacher_classes(teacher_id: str, school_id: str | None = None) -> str:
        if school_id:
            return f"teacher:classes:{teacher_id}:{school_id}"
        return f"teacher:classes:{teacher_id}"

    @staticmethod
    def school_stats(school_id: str) -> str:
        return f"school:stats:{school_id}"

    @staticmethod
    def admin_stats() -> str:
        return "admin:stats:global"

    @staticmethod
    def school_admin_stats(school_id: str) -> str:
        return f"school-admin:stats:{school_id}"

    @staticmethod
    def student_dashboard(student_id: str) -> str:
        return f"student:dashboard:{student_id}"

    @staticmethod
    def teacher_dashboard(teacher_id: str) -> str:
        return f"teacher:dashboard:{teacher_id}"

    @staticmethod
    def homepage_logos() -> str:
        return "logos:homepage"

    @staticmethod
    def published_success_stories() -> str:
        return "success_stories:published"


# ============================================================================
# TTL classes
# ============================================================================


class CacheTTL:
    """
    TTL classes in seconds, read from settings so CACHE_TTL_* overrides apply.

    Usage:
        ttl = CacheTTL.from_settings().DASHBOARD_STATS
    """

    __slots__ = (
        "SHORT",
        "MEDIUM",
        "LONG",
        "VERY_LONG",
        "DASHBOARD_STATS",
        "USER_DASHBOARD",
        "ADMIN_STATS",
        "SCHOOL_STATS",
    )

    def __init__(self, settings: Settings):
        cache = settings.cache
        self.SHORT = cache.CACHE_TTL_SHORT
        self.MEDIUM = cache.CACHE_TTL_MEDIUM
        self.LONG = cache.CACHE_TTL_LONG
        self.VERY_LONG = cache.CACHE_TTL_VERY_LONG
        self.DASHBOARD_STATS = cache.CACHE_TTL_DASHBOARD_STATS
        self.USER_DASHBOARD = cache.CACHE_TTL_USER_DASHBOARD
        self.ADMIN_STATS = cache.CACHE_TTL_ADMIN_STATS
        self.SCHOOL_STATS = cache.CACHE_TTL_SCHOOL_STATS

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CacheTTL":
        return cls(settings or get_settings())


# ============================================================================
# Health status
# ============================================================================


class HealthStatus(str, Enum):
    """Cached health of the remote tier."""

    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"
