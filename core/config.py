"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. auth_urn -> AUTH_URN). Type coercion and validation are built in.

  @field_validator / @model_validator: reject limiter parameters that would
      make a token bucket meaningless (zero rate, zero burst) at startup
      rather than on the first request.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or dna/.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessions.config")


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

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # SQLAlchemy URL for credentials + sessions, or "memory://" for the
    # in-process store (state lost on exit).
    auth_urn: str = "sqlite:///auth.db"
    dna_urn: str = "sqlite:///dna.db"

    # Base URL of a remote session service. Empty means the subsequence
    # service validates tokens in-process against this app's own store.
    auth_url: str = ""
    validate_timeout: float = 5.0

    # ------------------------------------------------------------------
    # Admission (token buckets)
    # ------------------------------------------------------------------

    signup_rate: float = 3.0
    signup_burst: int = 3
    login_rate: float = 1.0
    login_burst: int = 3
    # Longest a login will wait on its limiter. None = wait as long as needed
    # (the client disconnecting still cancels the wait).
    login_wait_timeout: Optional[float] = None

    # ------------------------------------------------------------------
    # HTTP flood guard (slowapi, per client address)
    # ------------------------------------------------------------------

    http_rate_limit: str = "120/minute"
    http_rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("signup_rate", "login_rate", "validate_timeout")
    @classmethod
    def _positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("signup_burst", "login_burst")
    @classmethod
    def _positive_burst(cls, v: int) -> int:
        if v < 1:
            raise ValueError("burst must be at least 1")
        return v

    @model_validator(mode="after")
    def _check_login_timeout(self) -> "Settings":
        if self.login_wait_timeout is not None and self.login_wait_timeout < 0:
            raise ValueError("LOGIN_WAIT_TIMEOUT must not be negative.")
        if self.debug and self.auth_urn == "memory://":
            logger.warning("Using in-memory auth store. Sessions will not persist across restarts.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
