"""
core/config.py -- IssueTrack settings, loaded once from the environment.

Every environment variable the service reads is declared on Settings below.
Nothing else calls os.getenv(); code takes a Settings instance from its
caller, and only the entry points (asgi.py, main.py) call get_settings().

How values arrive:
  pydantic-settings maps each field to the upper-cased env var of the same
      name (token_expire_seconds -> TOKEN_EXPIRE_SECONDS), falling back to a
      .env file in the working directory, then to the field default.

  get_settings() memoizes the instance with lru_cache, so the environment is
      parsed at most once per process.

  The "after" model validator checks the signing key once all fields are
      set: generated in DEBUG, mandatory otherwise, never under 32 chars.

Security notes:
  The same key signs every session token. A short key is rejected because
  HS256 is only as strong as its secret.

  Outside DEBUG a missing SECRET_KEY stops startup. Generating one silently
  would log every user out on each restart.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or projects/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("issuetrack.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'issuetrack.db'}"

# Mirrors auth.passwords.MIN_PASSWORD_LENGTH; core/ may not import auth/.
_MIN_ADMIN_PASSWORD_LENGTH = 8


class Settings(BaseSettings):
    """Runtime configuration for the API server and the admin CLI.

    Every field has a default, so tests build Settings(...) with explicit
    keyword values and no .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:5173"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = True
    token_expire_seconds: int = 3600
    # "Remember me" logins get the long-lived variant. Same signing key.
    refresh_token_expire_seconds: int = 7 * 24 * 3600
    session_cleanup_interval_seconds: int = 3600

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    self_registration_enabled: bool = True
    # When true, new accounts stay "pending" until an admin approves them.
    registration_requires_approval: bool = True

    # Optional bootstrap admin, created (approved, is_admin) at startup if the
    # email is not registered yet. Leave admin_email empty to skip.
    admin_email: str = ""
    admin_name: str = "Administrator"
    admin_password: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def check_signing_key(self) -> "Settings":
        """Fill in or reject SECRET_KEY.

        DEBUG=true with no key: a random one is generated for this process,
        so every restart invalidates outstanding tokens.
        Otherwise a missing key is fatal. A key under 32 characters is
        always fatal.
        """
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY is not set. Export SECRET_KEY (32+ characters) or add it to .env; "
                    "set DEBUG=true to run with a throwaway key."
                )
            self.secret_key = secrets.token_hex(32)
            logger.warning("SECRET_KEY not set; generated a temporary key. Issued tokens end with this process.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY is too short: at least 32 characters are required.")
        return self

    @model_validator(mode="after")
    def check_bootstrap_admin(self) -> "Settings":
        """ADMIN_EMAIL without a usable ADMIN_PASSWORD is a configuration error.

        Caught here, at load time, rather than as a traceback from the
        lifespan when the first-run seeding tries to create the account.
        """
        if self.admin_email and len(self.admin_password) < _MIN_ADMIN_PASSWORD_LENGTH:
            raise ValueError(
                f"ADMIN_PASSWORD must be set (at least {_MIN_ADMIN_PASSWORD_LENGTH} characters) "
                "when ADMIN_EMAIL is set. Unset ADMIN_EMAIL to skip admin seeding."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Parse the environment once and return the shared Settings.

    Entry points only. In tests, build Settings(_env_file=None, ...) directly
    or call get_settings.cache_clear() after changing the environment.
    """
    return Settings()
