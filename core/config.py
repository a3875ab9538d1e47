"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Bonus Auth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). List fields are read as JSON arrays
      (ALLOWED_COOKIE_DOMAINS='["bonus5.ru", "rubonus.pro"]').

  @model_validator(mode="after"): dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
       relies on key entropy -- a short key weakens every issued session.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or referral/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("bonusauth.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'bonusauth.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions / cookies
    # ------------------------------------------------------------------

    auth_cookie_name: str = "b5_auth_token"
    # Cross-origin frontends (rubonus.pro -> api.rubonus.pro) need SameSite=None,
    # which browsers only accept together with Secure.
    secure_cookies: bool = True
    cookie_samesite: str = "none"
    token_expire_seconds: int = 3600

    # Registrable domains whose subdomains share the auth cookie. A request
    # whose Origin host ends with one of these gets cookie domain ".<domain>".
    allowed_cookie_domains: list[str] = ["bonus5.ru", "rubonus.pro", "bonus.band", "mebelmobile.ru"]
    # Used when no Origin/Referer is present or the host matches nothing.
    session_domain: str | None = None

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "https://bonus5.ru",
        "https://www.bonus5.ru",
        "https://auth.bonus5.ru",
        "https://bonus.band",
        "https://www.bonus.band",
        "https://auth.bonus.band",
        "https://rubonus.pro",
        "https://www.rubonus.pro",
        "https://auth.rubonus.pro",
        "https://mebelmobile.ru",
    ]
    allowed_hosts: list[str] = ["*"]
    login_rate_limit: str = "10/minute"
    verification_rate_limit: str = "6/minute"
    rate_limit_storage_uri: str = "memory://"

    # ------------------------------------------------------------------
    # Account flows
    # ------------------------------------------------------------------

    # Fallback base for reset links when a user has no registration_domain.
    frontend_url: str = "http://localhost:5040"
    # {user_id} and {hash} are filled in with str.format(); both are URL-safe.
    verification_url: str = "http://localhost:8000/api/v1/auth/email/verify/{user_id}/{hash}"
    password_reset_expire_minutes: int = 60

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
