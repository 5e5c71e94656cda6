"""
auth/mailer.py -- Out-of-band delivery of password reset links.

RoleGate does not send email itself. IdentityService hands each reset link
to a ResetLinkSender; deployments plug in their own transport, tests plug in
a recorder. The default LoggingResetLinkSender only writes a log line.

Layer rule: no imports from api/ or rbac/.
"""

from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import quote_plus

logger = logging.getLogger("rolegate.auth")


def build_reset_url(frontend_url: str, token: str, email: str) -> str:
    """Return {frontend_url}/reset-password?token=<token>&email=<urlencoded email>."""
    return f"{frontend_url.rstrip('/')}/reset-password?token={token}&email={quote_plus(email)}"


class ResetLinkSender(Protocol):
    def send(self, email: str, url: str) -> None: ...


class LoggingResetLinkSender:
    """Default sender: records that a link was issued. The URL (which embeds
    the raw token) is only logged at DEBUG level."""

    def send(self, email: str, url: str) -> None:
        logger.info("Password reset link issued for %s", email)
        logger.debug("Password reset link for %s: %s", email, url)
