"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in route modules (to
apply per-route limits with @limiter.limit()).

A single shared instance means all routes share the same in-memory counter
store. Separate instances per module would each keep isolated counters and
the limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def auth_rate_limit() -> str:
    """Limit for credential endpoints (login, signup, reset mail), from LOGIN_RATE_LIMIT."""
    return get_settings().login_rate_limit
