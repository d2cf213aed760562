"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
(to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Limits are read from Settings at request time through the small provider
functions below, so METRICS_RATE_LIMIT and friends can be tuned per
deployment without touching the route modules.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def metrics_limit() -> str:
    return get_settings().metrics_rate_limit


def list_limit() -> str:
    return get_settings().list_rate_limit


def dashboards_limit() -> str:
    return get_settings().dashboards_rate_limit
