"""
api/limiter.py -- Shared slowapi rate limiter instance and the auth route limits.

Import this in api/main.py (to mount as middleware) and in the route modules
(to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Tests switch the whole limiter off with `limiter.enabled = False`.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Credential-guessing surface: login and refresh.
LOGIN_LIMIT = "10/minute"
# Account creation spam.
REGISTER_LIMIT = "5/minute"

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
