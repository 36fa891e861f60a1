"""
Core Interfaces Module

Protocols for components with more than one implementation:

- **remote_cache.py**: RemoteCache protocol (Redis-backed or disabled)

Interfaces follow the Protocol pattern (PEP 544) with @runtime_checkable,
so in-memory fakes satisfy them in tests without inheritance.
"""

from .remote_cache import RemoteCache, RemoteHealth

__all__ = ["RemoteCache", "RemoteHealth"]
