"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in route modules
(to apply per-route limits with @limiter.limit()).

A single shared instance means all routes share the same counter store;
separate instances per module would each count in isolation and the limits
would never trigger. With several workers, point RATE_LIMIT_STORAGE_URI at a
shared backend (e.g. redis://) so the counters are global.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri=get_settings().rate_limit_storage_uri)
