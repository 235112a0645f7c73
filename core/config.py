"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads happen here. No module should call os.getenv()
or os.environ.get() directly -- import get_settings() instead, or better,
accept a Settings instance as a constructor argument (AuthService and
TokenService do).

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): DEBUG-conditional SECRET_KEY policy. Dev mode
      generates a key with a warning; production mode refuses to start without one.

Behaviour switches:
  allow_privileged_signup    -- signup accepts "role" and "confirmed" fields.
  require_email_confirmation -- signup sends a confirmation mail instead of
                                issuing a session token straight away.
  Both default to the production-safe value. Development setups flip them
  in .env rather than relying on an environment-name check.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
placement/, or mail/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("placement.config")

_ROOT_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Placement backend settings, read from the environment and .env.

    Every field has a default; only SECRET_KEY is mandatory outside DEBUG.
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

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    token_expire_seconds: int = 90 * 24 * 3600
    cookie_expire_days: int = 90
    # Forces the Secure flag even when the app sits behind a TLS-terminating proxy.
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Signup / passwords
    # ------------------------------------------------------------------

    allow_privileged_signup: bool = False
    require_email_confirmation: bool = True
    reset_token_ttl_seconds: int = 10 * 60
    bcrypt_rounds: int = 12
    password_min_length: int = 8

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    auth_db_url: str = f"sqlite:///{_ROOT_DIR / 'placement_auth.db'}"
    placement_db_url: str = f"sqlite:///{_ROOT_DIR / 'placement_records.db'}"

    # ------------------------------------------------------------------
    # Mail
    # ------------------------------------------------------------------

    mail_backend: str = "log"  # "log" | "ses"
    mail_from: str = "noreply@localhost"
    aws_region: str = "us-east-1"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.mail_backend not in ("log", "ses"):
            raise ValueError(f"Unknown MAIL_BACKEND {self.mail_backend!r}; expected 'log' or 'ses'.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first call.

    Tests that need other values construct Settings(...) directly instead of
    going through this cache.
    """
    return Settings()
