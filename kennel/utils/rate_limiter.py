"""
Rate Limiter Configuration

slowapi limiter keyed on the real client IP. Storage is in-memory, so
limits apply per process.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from ..config import settings


def get_real_client_ip(request: Request) -> str:
    """Get real client IP behind a reverse proxy"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First entry is the original client
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_real_client_ip,
    default_limits=["100/minute"],
    enabled=settings.rate_limit_enabled,
)


# ================================
# RATE LIMIT CONFIGURATIONS
# ================================

RATE_LIMITS = {
    # Hold creation takes capacity, keep it tight
    "reservation_create": "30/minute",
    "reservation_update": "60/minute",

    "availability": "120/minute",
    "pricing_quote": "120/minute",

    "admin": "60/minute",
}


def get_rate_limit(operation: str) -> str:
    """Get rate limit for a specific operation."""
    return RATE_LIMITS.get(operation, "100/minute")
