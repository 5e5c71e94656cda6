"""
auth/tokens.py -- Password hashing, bearer token, and reset token utilities.

Credentials handled here:
  Passwords      bcrypt, called directly. authenticate_user() checks unknown
                 emails against _DUMMY_HASH so both failure paths cost one
                 bcrypt round [C1].

  Bearer tokens  opaque "rg_" + 64 hex chars (secrets.token_hex(32)). Only
                 HMAC-SHA256(SECRET_KEY, raw) is stored, looked up through a
                 UNIQUE index. Revocation is a row delete: one token on
                 logout, all of a user's tokens on a password change.

  Reset tokens   "rgr_" + 64 hex chars, hashed the same way. The prefix keeps
                 the two kinds apart in logs.

SECRET_KEY and both lifetimes come from core.config.get_settings(), read once
at import [M6].

Layer rule: no imports from api/ or rbac/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("rolegate.auth")

# ---------------------------------------------------------------------------
# Settings [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

ACCESS_TOKEN_PREFIX = "rg_"
RESET_TOKEN_PREFIX = "rgr_"

# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only reads 72 bytes and newer releases reject longer input, so the
    encoded password is cut to 72 bytes first.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


# Checked against unknown emails [C1].
_DUMMY_HASH: str = hash_password("rolegate_timing_dummy")


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Opaque token generation and hashing
# ---------------------------------------------------------------------------


def generate_access_token() -> str:
    """Generate a new bearer token in the format: rg_<64 hex chars>."""
    return f"{ACCESS_TOKEN_PREFIX}{secrets.token_hex(32)}"


def generate_reset_token() -> str:
    """Generate a new password reset token in the format: rgr_<64 hex chars>."""
    return f"{RESET_TOKEN_PREFIX}{secrets.token_hex(32)}"


def hash_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string.

    Deterministic, so the store can look tokens up by hash through a UNIQUE
    index. Used for both bearer and reset tokens.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


def token_expiry(now: datetime | None = None) -> str | None:
    """Return the ISO expiry timestamp for a token issued now, or None if tokens never expire."""
    if _settings.token_expire_seconds <= 0:
        return None
    now = now or datetime.now(timezone.utc)
    return (now + timedelta(seconds=_settings.token_expire_seconds)).isoformat()


def is_expired(expires_at: str | None, now: datetime | None = None) -> bool:
    """Return True if an ISO timestamp lies in the past. None never expires."""
    if expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return datetime.fromisoformat(expires_at) <= now


def reset_token_expired(created_at: str, now: datetime | None = None) -> bool:
    """Return True if a reset token issued at created_at is older than PASSWORD_RESET_EXPIRE_SECONDS."""
    issued = datetime.fromisoformat(created_at)
    deadline = issued + timedelta(seconds=_settings.password_reset_expire_seconds)
    return is_expired(deadline.isoformat(), now)
