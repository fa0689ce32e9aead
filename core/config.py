"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for CodeGate happen here. No module should
call os.getenv() or os.environ.get() directly.

Design patterns used:
  Immutable value object: Settings is frozen. It is built once at process
      start and handed by reference to every component that needs a secret
      (SessionTokens, OneTimeCodes, the mail transport). Components never
      look configuration up on their own.

  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call. Only the application assembly (api/main.py) calls it.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Both secrets are mandatory in every
      environment -- there is no auto-generated dev key, because codes stored
      under one CODE_SECRET are unverifiable under another.

Security notes:
  TOKEN_SECRET signs session JWTs (HS256). CODE_SECRET keys the HMAC
  fingerprints of one-time codes. They are deliberately separate so a leaked
  code database does not help forge sessions, and vice versa.

  Secrets shorter than 32 chars are rejected outright. HMAC-SHA256 and JWT
  signing both rely on key entropy.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or categories/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("codegate.config")

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `token_secret` reads from TOKEN_SECRET, `environment` from ENVIRONMENT.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    # "production" hardens cookies (Secure, SameSite=None). Anything else is
    # treated as development.
    environment: str = "development"

    # Empty string is the sentinel for "not configured"; the validator below
    # refuses to start in that case.
    token_secret: str = ""
    code_secret: str = ""

    database_url: str = "sqlite:///codegate.db"

    # ------------------------------------------------------------------
    # Mail (Resend HTTP API)
    # ------------------------------------------------------------------

    resend_api_key: str = ""
    mail_from: str = "CodeGate <no-reply@codegate.local>"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost:3000"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Refuse to start without both secrets, and reject short ones."""
        for name in ("token_secret", "code_secret"):
            value = getattr(self, name)
            if not value:
                raise ValueError(
                    f"{name.upper()} is required. Set {name.upper()} in your environment or .env file."
                )
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{name.upper()} must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.token_secret == self.code_secret:
            logger.warning("TOKEN_SECRET and CODE_SECRET are identical; use independent secrets.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables, or construct Settings(...)
    directly and pass it to the component under test.
    """
    return Settings()
