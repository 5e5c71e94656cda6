"""
api/limiter.py -- The slowapi Limiter, keyed on the client address.

api/main.py mounts it as middleware and the route modules decorate handlers
with @limiter.limit(). All of them must import this one object; a second
Limiter would keep its own counters and never see the first one's hits.

Login and forgot-password are keyed on email + origin instead, which needs
the request body, so they go through auth/throttle.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Public endpoints outside the identity throttle.
PUBLIC_FORM_LIMIT = "10/minute"

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
