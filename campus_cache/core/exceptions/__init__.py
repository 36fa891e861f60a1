"""
Exception Module

Structured exception hierarchy for the caching and admission-control layer.

Module Structure:
-----------------
- **base.py**: CampusCacheError base class + ConfigurationError
- **cache.py**: Cache tier, serialization and warming exceptions
- **rate_limit.py**: Rate limiting exceptions

Usage:
------
```python
from campus_cache.core.exceptions import CacheSerializationError, RateLimitExceededError
```

Author: System Architect
Date: 2025-12-08
"""

# Base exception
from campus_cache.core.exceptions.base import CampusCacheError, ConfigurationError

# Cache exceptions
from campus_cache.core.exceptions.cache import (
    CacheError,
    CacheSerializationError,
    CacheWarmingError,
)

# Rate limit exceptions
from campus_cache.core.exceptions.rate_limit import (
    RateLimitBackendError,
    RateLimitError,
    RateLimitExceededError,
)

__all__ = [
    # Base
    "CampusCacheError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheSerializationError",
    "CacheWarmingError",
    # Rate Limit
    "RateLimitError",
    "RateLimitExceededError",
    "RateLimitBackendError",
]
