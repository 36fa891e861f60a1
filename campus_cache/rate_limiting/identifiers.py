"""Request identifiers for rate limiting."""

from fastapi import Request
from slowapi.util import get_remote_address


def get_request_identifier(request: Request) -> str:
    """
    Extract the rate limit identifier from a request.

    Priority: X-User-ID header > first X-Forwarded-For hop > X-Real-IP > client host
    """
    user_id = request.headers.get("X-User-ID")
    if user_id:
        return f"user:{user_id}"

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return f"ip:{first_hop}"

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return f"ip:{real_ip.strip()}"

    if request.client is None:
        return "ip:unknown"
    return f"ip:{get_remote_address(request)}"
