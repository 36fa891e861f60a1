"""
Payload encoding for both cache tiers.

Values are encoded with orjson. The remote tier stores an envelope carrying
the write time and TTL so a local repopulation keeps the entry's remaining
lifetime instead of restarting it.
"""

from typing import Any

import orjson
from pydantic import BaseModel

from campus_cache.core.exceptions import CacheSerializationError


def _default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


def encode_value(key: str, value: Any) -> bytes:
    try:
        return orjson.dumps(value, default=_default)
    except TypeError as e:
        raise CacheSerializationError.from_exception(
            e, message=f"Cannot cache value for {key}", key=key, value_type=type(value).__name__
        )


def decode_value(payload: bytes | str) -> Any:
    return orjson.loads(payload)


def encode_envelope(payload: bytes, stored_at: float, ttl: float) -> str:
    """Wrap an encoded value for the remote tier (decode_responses=True, so str)."""
    return orjson.dumps({"v": orjson.Fragment(payload), "t": stored_at, "ttl": ttl}).decode()


def decode_envelope(raw: str | bytes) -> tuple[bytes, float, float]:
    """
    Unwrap a remote payload into (encoded value, stored_at, ttl).

    Raises:
        CacheSerializationError: the payload is not an envelope
    """
    try:
        data = orjson.loads(raw)
        return orjson.dumps(data["v"]), float(data["t"]), float(data["ttl"])
    except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise CacheSerializationError.from_exception(e, message="Malformed remote cache payload")
