"""
auth/service.py -- Identity flows: register, login, password change/reset, token lifecycle.

IdentityService owns the rules of the identity endpoints so the routes stay
thin: they parse the request, call one method here, and shape the response.

Flows and their token effects:
  register          -> new user + first bearer token
  login             -> throttled per email+origin, then a new bearer token
  change_password   -> verifies the current password, then rotate_credentials():
                       every token of the user is revoked and one fresh token issued
  logout            -> deletes the presented token only
  refresh           -> deletes the presented token and issues a replacement
  request_reset     -> throttled per email+origin; always silent about whether
                       the email is registered
  reset_password    -> consumes the single-use reset token, revokes every token,
                       issues a fresh one

Layer rule: no imports from api/ or rbac/. Import from core/ is allowed.
"""

from __future__ import annotations

import hmac
import logging

from sqlalchemy.exc import IntegrityError

from auth.mailer import ResetLinkSender, build_reset_url
from auth.models import AccessToken, User
from auth.store import StaleResetToken, UserStore
from auth.throttle import FORGOT_PASSWORD, LOGIN, IdentityThrottle
from auth.tokens import (
    authenticate_user,
    generate_access_token,
    generate_reset_token,
    hash_password,
    hash_token,
    reset_token_expired,
    token_expiry,
    verify_password,
)
from core.errors import InvalidCredentials, ValidationError

logger = logging.getLogger("rolegate.auth")

_INVALID_RESET = "This password reset token is invalid."


class IdentityService:
    """Identity operations over a UserStore.

    Usage:
        service = IdentityService(store, IdentityThrottle.from_settings(settings), LoggingResetLinkSender(), url)
        user, token = service.register("Ana", "ana@example.com", "secret123")
    """

    def __init__(
        self,
        store: UserStore,
        throttle: IdentityThrottle,
        reset_links: ResetLinkSender,
        frontend_url: str,
    ) -> None:
        self.store = store
        self.throttle = throttle
        self.reset_links = reset_links
        self.frontend_url = frontend_url

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, name: str, email: str, password: str) -> tuple[User, str]:
        """Create an account and return (user, raw bearer token).

        Raises ValidationError on a taken email. The pre-check gives the normal
        path a clean error; IntegrityError covers two registrations racing.
        """
        if self.store.get_by_email(email) is not None:
            raise _email_taken()
        try:
            user_id = self.store.create_user(User(name=name, email=email, hashed_password=hash_password(password)))
        except IntegrityError as exc:
            raise _email_taken() from exc
        user = self.store.get_by_id(user_id)
        logger.info("Registered user %s (id=%d)", user.email, user_id)
        return user, self._issue(user_id)

    def login(self, email: str, password: str, origin: str) -> tuple[User, str]:
        """Authenticate and return (user, raw bearer token).

        The throttle is hit before the credentials are checked, so the limit
        applies to right and wrong passwords alike.
        """
        self.throttle.hit(LOGIN, email, origin)
        user = authenticate_user(self.store, email, password)
        if user is None:
            raise InvalidCredentials()
        return user, self._issue(user.id)

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    def logout(self, token: AccessToken) -> None:
        self.store.delete_token(token.id)

    def refresh(self, token: AccessToken) -> str:
        """Revoke the presented token and return its replacement."""
        raw = generate_access_token()
        self.store.replace_token(token.id, token.user_id, hash_token(raw), token_expiry())
        return raw

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def change_password(self, user: User, current_password: str, new_password: str) -> str:
        """Replace the password, revoke every token of the user, return a fresh token."""
        if user.hashed_password is None or not verify_password(current_password, user.hashed_password):
            raise ValidationError(
                "The current password is incorrect.",
                fields={"current_password": ["The current password is incorrect."]},
            )
        raw = generate_access_token()
        self.store.rotate_credentials(user.id, hash_password(new_password), hash_token(raw), token_expiry())
        logger.info("Password changed for user id=%d; all tokens revoked", user.id)
        return raw

    def request_reset(self, email: str, origin: str) -> None:
        """Issue a reset link if the email is registered. Never reveals which case applied."""
        self.throttle.hit(FORGOT_PASSWORD, email, origin)
        user = self.store.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for an unregistered email")
            return
        raw = generate_reset_token()
        self.store.put_reset_token(user.email, hash_token(raw))
        self.reset_links.send(user.email, build_reset_url(self.frontend_url, raw, user.email))

    def reset_password(self, token: str, email: str, password: str) -> tuple[User, str]:
        """Consume a reset token, set the new password, return (user, fresh bearer token).

        Unknown email, wrong token, and expired token all fail with the same
        ValidationError.
        """
        user = self.store.get_by_email(email)
        record = self.store.get_reset_token(email)
        presented = hash_token(token)
        if user is None or record is None or not hmac.compare_digest(record.token_hash, presented):
            raise ValidationError(_INVALID_RESET, fields={"email": [_INVALID_RESET]})
        if reset_token_expired(record.created_at):
            self.store.delete_reset_token(email)
            raise ValidationError(_INVALID_RESET, fields={"email": [_INVALID_RESET]})

        raw = generate_access_token()
        try:
            self.store.rotate_credentials(
                user.id,
                hash_password(password),
                hash_token(raw),
                token_expiry(),
                consume_reset=(user.email, presented),
            )
        except StaleResetToken:
            # Another request consumed or replaced the token after the check above.
            raise ValidationError(_INVALID_RESET, fields={"email": [_INVALID_RESET]}) from None
        logger.info("Password reset for user id=%d; all tokens revoked", user.id)
        return user, raw

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue(self, user_id: int) -> str:
        raw = generate_access_token()
        self.store.create_token(user_id, hash_token(raw), token_expiry())
        return raw


def _email_taken() -> ValidationError:
    return ValidationError(
        "The email has already been taken.",
        fields={"email": ["The email has already been taken."]},
    )
