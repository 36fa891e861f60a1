"""
Cache Module

Two-tier caching (local bounded cache + remote Redis tier) with
stale-while-revalidate refreshes and scheduled warming.
"""

from .cache_manager import CacheManager
from .cache_warmer import CacheWarmer, WarmGroup, WarmingScheduler, WarmReport, WarmTarget
from .local_cache import CacheEntry, LocalBoundedCache
from .redis_client import DisabledRemoteCache, RedisRemoteCache, create_remote_cache

__all__ = [
    "CacheEntry",
    "CacheManager",
    "CacheWarmer",
    "DisabledRemoteCache",
    "LocalBoundedCache",
    "RedisRemoteCache",
    "WarmGroup",
    "WarmReport",
    "WarmTarget",
    "WarmingScheduler",
    "create_remote_cache",
]
