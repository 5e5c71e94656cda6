"""
auth/throttle.py -- Per-identity + per-origin attempt throttle for login and password reset.

slowapi (api/limiter.py) keys limits on request attributes it can see before
the handler runs -- the remote address. Login and forgot-password need a key
built from the submitted email as well, so the check runs inside the handler
on the same `limits` library slowapi is built on.

Key shape: "<lowercased email>|<origin address>", namespaced by scope
("login", "forgot-password"), so a client hammering one account from one
address does not lock that account out for everyone else, and one address
cannot rotate through emails to dodge the limit on a single identity.

Every attempt counts, correct credentials or not. Once the moving window is
full, hit() raises RateLimited carrying the seconds until the window frees a
slot. The throttle never looks at the user table, so a 429 says nothing about
whether the identity exists.

Layer rule: no imports from api/ or rbac/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import math
import time

from limits import RateLimitItem, parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

from core.config import Settings
from core.errors import RateLimited

logger = logging.getLogger("rolegate.auth")

LOGIN = "login"
FORGOT_PASSWORD = "forgot-password"


def identity_key(email: str, origin: str) -> str:
    return f"{email.strip().lower()}|{origin}"


class IdentityThrottle:
    """Moving-window limiter keyed by scope, lowercased email, and origin address.

    Usage:
        throttle = IdentityThrottle({"login": "5/minute"})
        throttle.hit("login", "ana@example.com", "10.0.0.7")  # raises RateLimited on the 6th call
    """

    def __init__(self, limits_by_scope: dict[str, str], storage_uri: str = "memory://") -> None:
        self._storage = storage_from_string(storage_uri)
        self._limiter = MovingWindowRateLimiter(self._storage)
        self._limits: dict[str, RateLimitItem] = {scope: parse(value) for scope, value in limits_by_scope.items()}

    @classmethod
    def from_settings(cls, settings: Settings) -> IdentityThrottle:
        return cls(
            {
                LOGIN: settings.login_rate_limit,
                FORGOT_PASSWORD: settings.forgot_password_rate_limit,
            }
        )

    def hit(self, scope: str, email: str, origin: str) -> None:
        """Count one attempt. Raises RateLimited if the window for this key is already full."""
        item = self._limits[scope]
        key = identity_key(email, origin)
        if self._limiter.hit(item, scope, key):
            return
        reset_time, _remaining = self._limiter.get_window_stats(item, scope, key)
        retry_after = max(1, math.ceil(reset_time - time.time()))
        logger.warning("Throttled %s attempt for %s (retry in %ds)", scope, key, retry_after)
        raise RateLimited(retry_after=retry_after)

    def reset(self) -> None:
        """Forget every recorded attempt."""
        self._storage.reset()
