"""
auth/models.py -- Domain dataclasses for identity and credential entities.

Plain records filled by UserStore. None of them carry behaviour.

Timestamps are ISO 8601 UTC strings, written by the store.

Layer rule: no imports from api/ or rbac/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered identity in RoleGate.

    email is unique and always stored lowercased. hashed_password is a bcrypt
    hash; the plaintext never reaches the store. Users are never hard-deleted.
    Roles and permissions live in rbac/ and are looked up by user id.
    """

    name: str
    email: str
    id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class AccessToken:
    """An opaque bearer token bound to exactly one user.

    Security design:
    - token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token is
      returned to the client once and never persisted.
    - expires_at is None when TOKEN_EXPIRE_SECONDS=0 (no expiry).
    - Deleted on logout (this token only), refresh (replaced by a new one),
      and password change/reset (every token of the user).
    """

    user_id: int
    token_hash: str
    id: int | None = None
    name: str = "auth_token"
    created_at: str | None = None
    last_used_at: str | None = None
    expires_at: str | None = None


@dataclass
class PasswordResetToken:
    """Outstanding password reset for one email. At most one per email."""

    email: str
    token_hash: str
    created_at: str
