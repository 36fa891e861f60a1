from .settings import (
    DEFAULT_RATE_LIMIT_PRESETS,
    RateLimitPreset,
    Settings,
    get_settings,
    reload_settings,
)

__all__ = [
    "DEFAULT_RATE_LIMIT_PRESETS",
    "RateLimitPreset",
    "Settings",
    "get_settings",
    "reload_settings",
]
