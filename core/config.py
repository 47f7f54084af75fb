"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for ChefFlow happen here. No module should
call os.getenv() or os.environ.get() directly. The app factory receives a
Settings instance once at startup and publishes it on app.state; request
handlers read configuration from there, never from the environment.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_access_secret -> JWT_ACCESS_SECRET).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode (DEBUG=true) generates missing secrets with a warning;
      production mode refuses to start without them.

Security notes:
  [M6] Secrets shorter than 32 chars are rejected outright.
  [M7] Access and refresh secrets must differ. A leaked access secret must
       not be usable to forge refresh tokens, and vice versa.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger("chefflow.config")

_SECRET_FIELDS = ("jwt_access_secret", "jwt_refresh_secret", "session_secret")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings(debug=True) can be instantiated in
    test environments without a real .env file.
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
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    database_url: str = "sqlite:///./chefflow.db"

    # ------------------------------------------------------------------
    # Secrets -- empty string is the "not configured" sentinel
    # ------------------------------------------------------------------

    jwt_access_secret: str = ""
    jwt_refresh_secret: str = ""
    # Signs the Starlette session cookie that carries the OAuth state.
    session_secret: str = ""

    # ------------------------------------------------------------------
    # Credentials and cookies
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 10
    secure_cookies: bool = False
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"

    # ------------------------------------------------------------------
    # Google OAuth (empty client id/secret disables the provider)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    google_callback_url: str = "http://localhost:3001/auth/google/callback"
    frontend_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    allowed_origins: Annotated[list[str], NoDecode] = ["http://localhost:3000"]
    allowed_hosts: Annotated[list[str], NoDecode] = ["*"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("allowed_origins", "allowed_hosts", mode="before")
    @classmethod
    def split_csv(cls, value):
        """Accept ALLOWED_ORIGINS=http://a,http://b as well as a real list."""
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("bcrypt_rounds")
    @classmethod
    def check_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return value

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret policy [M6] [M7].

        Dev mode (DEBUG=true): auto-generate each missing secret with a
            warning. Sessions will not survive restart.

        Production mode: refuse to start if any secret is missing.
        """
        for field in _SECRET_FIELDS:
            value = getattr(self, field)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{field.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, field, value)
                logger.warning(
                    "WARNING: Using auto-generated %s. Sessions will not persist across restarts.",
                    field.upper(),
                )
            if len(value) < 32:
                raise ValueError(f"{field.upper()} must be at least 32 characters.")

        if self.jwt_access_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be different.")

        if self.cookie_samesite == "none" and not self.secure_cookies:
            raise ValueError("COOKIE_SAMESITE=none requires SECURE_COOKIES=true.")
        return self

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: build Settings(...) directly and pass it to create_app(), or call
    get_settings.cache_clear() between test cases to pick up new env vars.
    """
    return Settings()
