"""
Dashboard warm plan.

Candidates whose absence makes the next dashboard request slow:

- admin:stats:global                  DASHBOARD_STATS TTL
- school-admin:stats:{school_id}      SCHOOL_STATS TTL, active schools
- student:dashboard:{student_id}      USER_DASHBOARD TTL, recently active students
- teacher:dashboard:{teacher_id}      USER_DASHBOARD TTL, recently active teachers

The data itself comes from a DashboardDataSource supplied by the host
application.
"""

from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any, Protocol

from campus_cache.core.config.constants import CacheKeys, CacheTTL, Stage
from campus_cache.core.config.settings import Settings, get_settings
from campus_cache.core.logging.logger import get_logger
from campus_cache.infrastructure.cache.cache_warmer import WarmGroup, WarmPlan, WarmTarget

logger = get_logger(__name__)


class DashboardDataSource(Protocol):
    """Reads the warmer needs from the relational store."""

    async def fetch_admin_stats(self) -> Any:
        ...

    async def list_active_school_ids(self, limit: int) -> list[str]:
        ...

    async def fetch_school_stats(self, school_id: str) -> Any:
        ...

    async def list_active_student_ids(self, limit: int) -> list[str]:
        ...

    async def fetch_student_dashboard(self, student_id: str) -> Any:
        ...

    async def list_active_teacher_ids(self, limit: int) -> list[str]:
        ...

    async def fetch_teacher_dashboard(self, teacher_id: str) -> Any:
        ...


async def _entity_group(
    name: str,
    list_ids: Callable[[int], Awaitable[list[str]]],
    key_for: Callable[[str], str],
    fetch: Callable[[str], Awaitable[Any]],
    ttl: float,
    limit: int,
    batch_size: int,
) -> WarmGroup | None:
    try:
        ids = await list_ids(limit)
    except Exception as e:
        logger.warning(
            "Cache warm group skipped, entity list failed",
            stage=Stage.WARM_RUN.value,
            group=name,
            error=str(e),
        )
        return None

    targets = [WarmTarget(key_for(entity_id), partial(fetch, entity_id), ttl) for entity_id in ids[:limit]]
    return WarmGroup(name=name, targets=targets, batch_size=batch_size)


def build_dashboard_warm_plan(source: DashboardDataSource, settings: Settings | None = None) -> WarmPlan:
    """
    Build the plan used by the scheduler.

    Entity lists are resolved on every run. A failing list drops only its
    own group.
    """
    settings = settings or get_settings()
    ttl = CacheTTL.from_settings(settings)
    limit = settings.warming.CACHE_WARMING_MAX_ENTITIES
    batch_size = settings.warming.CACHE_WARMING_BATCH_SIZE

    async def plan() -> list[WarmTarget | WarmGroup]:
        items: list[WarmTarget | WarmGroup] = [
            WarmTarget(CacheKeys.admin_stats(), source.fetch_admin_stats, ttl.DASHBOARD_STATS)
        ]
        if limit <= 0:
            return items

        groups = [
            ("school_stats", source.list_active_school_ids, CacheKeys.school_admin_stats,
             source.fetch_school_stats, ttl.SCHOOL_STATS),
            ("student_dashboards", source.list_active_student_ids, CacheKeys.student_dashboard,
             source.fetch_student_dashboard, ttl.USER_DASHBOARD),
            ("teacher_dashboards", source.list_active_teacher_ids, CacheKeys.teacher_dashboard,
             source.fetch_teacher_dashboard, ttl.USER_DASHBOARD),
        ]
        for name, list_ids, key_for, fetch, group_ttl in groups:
            group = await _entity_group(name, list_ids, key_for, fetch, group_ttl, limit, batch_size)
            if group is not None:
                items.append(group)
        return items

    return plan
