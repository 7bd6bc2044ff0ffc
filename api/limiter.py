"""
api/limiter.py -- Shared slowapi limiter: coarse per-client flood guard.

This sits in front of everything and counts requests per client address
(HTTP_RATE_LIMIT, default 120/minute). It is not the admission layer: the
signup/login token buckets in auth/admission.py are process-wide per
operation and carry the real policy. This only stops one address from
hammering the server.

Import this in api/main.py (to mount as middleware) and in route modules
that need @limiter.exempt. Using a single shared instance ensures all routes
share the same in-memory counter store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[_settings.http_rate_limit],
    storage_uri="memory://",
    enabled=_settings.http_rate_limit_enabled,
)
