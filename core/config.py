"""
core/config.py -- RoleGate settings, read from the environment and an optional .env file.

get_settings() is the one place environment variables are read. Every other
module asks it for values; nothing calls os.getenv() on its own.

  Settings         pydantic-settings model. SECRET_KEY maps to secret_key and
                   so on; values are coerced and validated on construction.
                   PROTECTED_ROLES / PROTECTED_PERMISSIONS / ALLOWED_HOSTS /
                   CORS_ORIGINS are JSON arrays.
  get_settings()   lru_cache'd accessor, so the environment is parsed once per
                   process. Tests that change the environment clear the cache.

SECRET_KEY policy (validated after the fields are loaded):
  [M6] Bearer and reset tokens are stored as HMAC-SHA256(SECRET_KEY, token),
       so keys under 32 characters are refused.
  [M7] Outside DEBUG a missing key stops startup. Under DEBUG a throwaway key
       is generated and a warning logged; tokens issued with it die on restart.

Layer rule: core/ is the kernel. This module may not import from api/, auth/
or rbac/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("rolegate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'rolegate.db'}"


class Settings(BaseSettings):
    """Every tunable of the service, with defaults that work for local development."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; validate_secret_key() replaces it or refuses to start.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Bearer token lifetime. 0 = no expiry; tokens then live until logout,
    # refresh, or a password change revokes them.
    token_expire_seconds: int = 86400
    password_reset_expire_seconds: int = 3600
    # Frontend page that consumes password reset links.
    frontend_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Throttling (per lowercased email + origin address)
    # ------------------------------------------------------------------

    login_rate_limit: str = "5/minute"
    forgot_password_rate_limit: str = "3/minute"

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    protected_roles: set[str] = {"admin", "usuario"}
    protected_permissions: set[str] = {"profile.read", "users.read", "users.manage"}
    seed_on_startup: bool = True

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Apply the SECRET_KEY policy from the module docstring [M6][M7]."""
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY must be set unless DEBUG=true. "
                    "Add it to the environment or to .env."
                )
            self.secret_key = secrets.token_hex(32)
            logger.warning("DEBUG mode: generated a temporary SECRET_KEY; issued tokens will not survive a restart.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first use."""
    return Settings()
