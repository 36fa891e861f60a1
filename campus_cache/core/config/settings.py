"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
caching and admission-control layer. All tunables (remote tier credentials,
TTL classes, warming cadence, rate-limit presets, logging) live here.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Grouped read-only views (settings.redis, settings.cache, ...)
- Easy testing: construct Settings(...) with explicit overrides

Author: System Architect
Date: 2025-12-05
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RateLimitPreset(BaseModel):
    """Admission budget for one route category."""

    max_requests: int = Field(gt=0, description="Requests admitted per window")
    window_seconds: int = Field(gt=0, description="Sliding window length in seconds")


DEFAULT_RATE_LIMIT_PRESETS: dict[str, RateLimitPreset] = {
    "AUTH": RateLimitPreset(max_requests=5, window_seconds=60),
    "API": RateLimitPreset(max_requests=100, window_seconds=60),
    "UPLOAD": RateLimitPreset(max_requests=30, window_seconds=60),
    "READ": RateLimitPreset(max_requests=200, window_seconds=60),
    "WRITE": RateLimitPreset(max_requests=50, window_seconds=60),
}


class RedisSettings(BaseSettings):
    """
    Remote cache tier configuration.

    STAGE-0.1: Remote tier connection configuration

    The tier is enabled only when REDIS_ENABLED is true AND both REDIS_URL and
    REDIS_TOKEN are set. Missing any of them disables the tier for the
    lifetime of the process.
    """

    REDIS_ENABLED: bool = Field(default=True, description="Feature flag for the remote tier")
    REDIS_URL: str | None = Field(default=None, description="Remote cache endpoint (redis:// or rediss://)")
    REDIS_TOKEN: str | None = Field(default=None, description="Remote cache access token")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=60, description="Active health probe interval in seconds")
    REDIS_RETRY_ATTEMPTS: int = Field(default=2, description="Total attempts per operation (first try + retries)")
    REDIS_RETRY_BASE_DELAY: float = Field(default=0.01, description="Backoff base delay in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Cache facade configuration.

    STAGE-0.2: Tier policy, TTL classes and observability sizing

    TTL values are in seconds.
    """

    CACHE_EXECUTION_MODE: Literal["auto", "request_scoped", "long_lived"] = Field(
        default="auto", description="Tier order policy; auto detects serverless platforms"
    )
    CACHE_LOCAL_MAX_SIZE: int = Field(default=1000, description="Local tier capacity (entries)")
    CACHE_OPERATION_LOG_SIZE: int = Field(default=1000, description="Operation ring buffer capacity")
    CACHE_VERIFY_WRITES: bool = Field(default=False, description="Read back remote writes in get_or_set")
    CACHE_REFRESH_QUEUE_SIZE: int = Field(default=100, description="Pending background refresh capacity")
    CACHE_REFRESH_WORKERS: int = Field(default=2, description="Background refresh worker tasks")

    CACHE_TTL_SHORT: int = Field(default=120, description="Frequently changing data")
    CACHE_TTL_MEDIUM: int = Field(default=300, description="Default TTL")
    CACHE_TTL_LONG: int = Field(default=600, description="Rarely changing data")
    CACHE_TTL_VERY_LONG: int = Field(default=900, description="Almost static data")
    CACHE_TTL_DASHBOARD_STATS: int = Field(default=600, description="Aggregate dashboard statistics")
    CACHE_TTL_USER_DASHBOARD: int = Field(default=300, description="Per-user dashboards")
    CACHE_TTL_ADMIN_STATS: int = Field(default=600, description="Admin statistics")
    CACHE_TTL_SCHOOL_STATS: int = Field(default=600, description="Per-school statistics")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class WarmingSettings(BaseSettings):
    """
    Cache warming scheduler configuration.

    STAGE-0.3: Warm cadence and run guards
    """

    CACHE_WARMING_ENABLED: bool = Field(default=True, description="Run the warming scheduler")
    CACHE_WARMING_INTERVAL: int = Field(default=300, description="Seconds between scheduled runs")
    CACHE_WARMING_COOLDOWN: float = Field(default=5.0, description="Minimum seconds between runs")
    CACHE_WARMING_TIMEOUT: float = Field(default=30.0, description="Hard timeout for one run")
    CACHE_WARMING_BATCH_SIZE: int = Field(default=3, description="Concurrent fetches per batch")
    CACHE_WARMING_MAX_ENTITIES: int = Field(default=10, description="Entities warmed per group")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RateLimitSettings(BaseSettings):
    """
    Rate limiting configuration.

    STAGE-0.4: Preset table (route category -> budget)

    Override with a JSON object, e.g.
    RATE_LIMIT_PRESETS='{"AUTH": {"max_requests": 10, "window_seconds": 60}}'
    """

    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Admission control on/off")
    RATE_LIMIT_PRESETS: dict[str, RateLimitPreset] = Field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMIT_PRESETS),
        description="Route category budgets",
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """General application configuration."""

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    APP_NAME: str = Field(default="campus-cache", description="Service name")
    APP_VERSION: str = Field(default="1.0.0", description="Service version")
    API_PREFIX: str = Field(default="/api/v1", description="Route prefix for the HTTP surface")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from campus_cache.core.config.settings import get_settings

        settings = get_settings()
        ttl = settings.cache.CACHE_TTL_MEDIUM
        url = settings.redis.REDIS_URL
    """

    # Remote tier
    REDIS_ENABLED: bool = Field(default=True, description="Feature flag for the remote tier")
    REDIS_URL: str | None = Field(default=None, description="Remote cache endpoint (redis:// or rediss://)")
    REDIS_TOKEN: str | None = Field(default=None, description="Remote cache access token")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, gt=0, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5.0, gt=0, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, gt=0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=60, gt=0, description="Active health probe interval in seconds")
    REDIS_RETRY_ATTEMPTS: int = Field(default=2, ge=1, le=5, description="Total attempts per operation")
    REDIS_RETRY_BASE_DELAY: float = Field(default=0.01, ge=0, description="Backoff base delay in seconds")

    # Cache facade
    CACHE_EXECUTION_MODE: Literal["auto", "request_scoped", "long_lived"] = Field(
        default="auto", description="Tier order policy; auto detects serverless platforms"
    )
    CACHE_LOCAL_MAX_SIZE: int = Field(default=1000, gt=0, description="Local tier capacity (entries)")
    CACHE_OPERATION_LOG_SIZE: int = Field(default=1000, gt=0, description="Operation ring buffer capacity")
    CACHE_VERIFY_WRITES: bool = Field(default=False, description="Read back remote writes in get_or_set")
    CACHE_REFRESH_QUEUE_SIZE: int = Field(default=100, gt=0, description="Pending background refresh capacity")
    CACHE_REFRESH_WORKERS: int = Field(default=2, gt=0, description="Background refresh worker tasks")

    CACHE_TTL_SHORT: int = Field(default=120, gt=0, description="Frequently changing data")
    CACHE_TTL_MEDIUM: int = Field(default=300, gt=0, description="Default TTL")
    CACHE_TTL_LONG: int = Field(default=600, gt=0, description="Rarely changing data")
    CACHE_TTL_VERY_LONG: int = Field(default=900, gt=0, description="Almost static data")
    CACHE_TTL_DASHBOARD_STATS: int = Field(default=600, gt=0, description="Aggregate dashboard statistics")
    CACHE_TTL_USER_DASHBOARD: int = Field(default=300, gt=0, description="Per-user dashboards")
    CACHE_TTL_ADMIN_STATS: int = Field(default=600, gt=0, description="Admin statistics")
    CACHE_TTL_SCHOOL_STATS: int = Field(default=600, gt=0, description="Per-school statistics")

    # Warming
    CACHE_WARMING_ENABLED: bool = Field(default=True, description="Run the warming scheduler")
    CACHE_WARMING_INTERVAL: int = Field(default=300, gt=0, description="Seconds between scheduled runs")
    CACHE_WARMING_COOLDOWN: float = Field(default=5.0, ge=0, description="Minimum seconds between runs")
    CACHE_WARMING_TIMEOUT: float = Field(default=30.0, gt=0, description="Hard timeout for one run")
    CACHE_WARMING_BATCH_SIZE: int = Field(default=3, gt=0, description="Concurrent fetches per batch")
    CACHE_WARMING_MAX_ENTITIES: int = Field(default=10, ge=0, description="Entities warmed per group")

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Admission control on/off")
    RATE_LIMIT_PRESETS: dict[str, RateLimitPreset] = Field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMIT_PRESETS),
        description="Route category budgets",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    APP_NAME: str = Field(default="campus-cache", description="Service name")
    APP_VERSION: str = Field(default="1.0.0", description="Service version")
    API_PREFIX: str = Field(default="/api/v1", description="Route prefix for the HTTP surface")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("RATE_LIMIT_PRESETS")
    @classmethod
    def normalize_preset_names(cls, v):
        """Preset names are matched case-insensitively; store them upper-cased."""
        merged = dict(DEFAULT_RATE_LIMIT_PRESETS)
        merged.update({name.upper(): preset for name, preset in v.items()})
        return merged

    # Grouped views
    @property
    def redis(self) -> 'RedisSettings':
        """Get remote tier settings."""
        return RedisSettings(
            REDIS_ENABLED=self.REDIS_ENABLED,
            REDIS_URL=self.REDIS_URL,
            REDIS_TOKEN=self.REDIS_TOKEN,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
            REDIS_RETRY_ATTEMPTS=self.REDIS_RETRY_ATTEMPTS,
            REDIS_RETRY_BASE_DELAY=self.REDIS_RETRY_BASE_DELAY,
        )

    @property
    def cache(self) -> 'CacheSettings':
        """Get cache facade settings."""
        return CacheSettings(
            CACHE_EXECUTION_MODE=self.CACHE_EXECUTION_MODE,
            CACHE_LOCAL_MAX_SIZE=self.CACHE_LOCAL_MAX_SIZE,
            CACHE_OPERATION_LOG_SIZE=self.CACHE_OPERATION_LOG_SIZE,
            CACHE_VERIFY_WRITES=self.CACHE_VERIFY_WRITES,
            CACHE_REFRESH_QUEUE_SIZE=self.CACHE_REFRESH_QUEUE_SIZE,
            CACHE_REFRESH_WORKERS=self.CACHE_REFRESH_WORKERS,
            CACHE_TTL_SHORT=self.CACHE_TTL_SHORT,
            CACHE_TTL_MEDIUM=self.CACHE_TTL_MEDIUM,
            CACHE_TTL_LONG=self.CACHE_TTL_LONG,
            CACHE_TTL_VERY_LONG=self.CACHE_TTL_VERY_LONG,
            CACHE_TTL_DASHBOARD_STATS=self.CACHE_TTL_DASHBOARD_STATS,
            CACHE_TTL_USER_DASHBOARD=self.CACHE_TTL_USER_DASHBOARD,
            CACHE_TTL_ADMIN_STATS=self.CACHE_TTL_ADMIN_STATS,
            CACHE_TTL_SCHOOL_STATS=self.CACHE_TTL_SCHOOL_STATS,
        )

    @property
    def warming(self) -> 'WarmingSettings':
        """Get cache warming settings."""
        return WarmingSettings(
            CACHE_WARMING_ENABLED=self.CACHE_WARMING_ENABLED,
            CACHE_WARMING_INTERVAL=self.CACHE_WARMING_INTERVAL,
            CACHE_WARMING_COOLDOWN=self.CACHE_WARMING_COOLDOWN,
            CACHE_WARMING_TIMEOUT=self.CACHE_WARMING_TIMEOUT,
            CACHE_WARMING_BATCH_SIZE=self.CACHE_WARMING_BATCH_SIZE,
            CACHE_WARMING_MAX_ENTITIES=self.CACHE_WARMING_MAX_ENTITIES,
        )

    @property
    def rate_limit(self) -> 'RateLimitSettings':
        """Get rate limit settings."""
        return RateLimitSettings(
            RATE_LIMIT_ENABLED=self.RATE_LIMIT_ENABLED,
            RATE_LIMIT_PRESETS=self.RATE_LIMIT_PRESETS,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_PREFIX=self.API_PREFIX,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.5: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
