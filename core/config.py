"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for KSMS happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. db_host -> DB_HOST). Type coercion and validation are built in.

Security notes:
  SECRET_KEY signs every session token. It is supplied by the environment and
  handed to auth.tokens.TokenCodec at startup; nothing else reads it. Keys
  shorter than 32 chars are rejected. Outside DEBUG a missing key is a hard
  startup failure.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
storage/, or clusters/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

logger = logging.getLogger("ksms.config")


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
    secret_key: str = ""
    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:8080", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    auth_cookie_name: str = "token"
    # Fixed session lifetime, 24 hours. Not negotiable per login.
    token_expire_seconds: int = 24 * 60 * 60
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Durable store
    #
    # DATABASE_URL wins when set; otherwise a PostgreSQL URL is assembled from
    # the DB_* parts below.
    # ------------------------------------------------------------------

    database_url: str = ""
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: str = "password"
    db_name: str = "ksms"
    db_connect_timeout: int = 5

    # ------------------------------------------------------------------
    # Clusters and alerts
    # ------------------------------------------------------------------

    cluster_request_timeout_seconds: float = 10.0
    alert_stream_interval_seconds: float = 5.0

    @property
    def resolved_database_url(self) -> str:
        """Return DATABASE_URL, or a psycopg2 URL built from the DB_* settings.

        URL.create() escapes the password, so special characters in
        DB_PASSWORD do not corrupt the connection string.
        """
        if self.database_url:
            return self.database_url
        url = URL.create(
            "postgresql+psycopg2",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )
        return url.render_as_string(hide_password=False)

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        DEBUG=true: auto-generate a random key with a warning. Sessions do not
            survive a restart -- acceptable for local development.
        Otherwise: refuse to start without a key.
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
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
