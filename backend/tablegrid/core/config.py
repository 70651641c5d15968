"""Application configuration via pydantic-settings.

All config is sourced from environment variables. Never use os.getenv() directly.
"""

import json

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionSettings(BaseSettings):
    """In-memory session store with sliding-window expiry."""

    model_config = SettingsConfigDict(env_prefix="")

    # Seconds of inactivity before a session expires
    session_timeout: int = 1800
    # Seconds between background sweeps of expired sessions (0 disables)
    session_cleanup_interval: int = 300
    session_cookie_name: str = "tablegrid_session"

    @field_validator("session_timeout")
    @classmethod
    def validate_positive_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("SESSION_TIMEOUT must be a positive number of seconds")
        return v


class RemoteApiSettings(BaseSettings):
    """Atelier REST API transport configuration."""

    model_config = SettingsConfigDict(env_prefix="")

    # Per-request deadline for every call to the remote server (seconds)
    remote_api_timeout: float = 30.0
    remote_api_default_path_prefix: str = "/api/atelier/"


class GridSettings(BaseSettings):
    """Grid paging and WebSocket transport limits."""

    model_config = SettingsConfigDict(env_prefix="")

    default_page_size: int = 100
    max_page_size: int = 1000
    ws_max_message_bytes: int = 1024 * 1024
    ws_heartbeat_interval: int = 30


class SecuritySettings(BaseSettings):
    """Request throttling and CSRF protection for the HTTP API."""

    model_config = SettingsConfigDict(env_prefix="")

    # Requests per client address per window on /api routes
    rate_limit_max: int = 100
    rate_limit_window: int = 60
    csrf_enabled: bool = True
    csrf_cookie_name: str = "tablegrid_csrf"
    csrf_header_name: str = "X-CSRF-Token"


class Settings(BaseSettings):
    """Table grid server settings.

    Environment variables are the single source of truth.
    Defaults are development-safe values only.
    """

    model_config = SettingsConfigDict(env_file=".env")

    app_env: str = "development"
    session_secret: str = "dev-secret-change-in-prod"

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Refuse to start with dev defaults in non-development environments."""
        is_prod = self.app_env != "development"
        has_dev_secret = self.session_secret == "dev-secret-change-in-prod"
        if is_prod and has_dev_secret:
            raise ValueError(
                f"SESSION_SECRET must be set when APP_ENV={self.app_env!r}. "
                "The default dev secret is not allowed outside development."
            )
        return self

    # Nested settings groups
    session: SessionSettings = SessionSettings()
    remote_api: RemoteApiSettings = RemoteApiSettings()
    grid: GridSettings = GridSettings()
    security: SecuritySettings = SecuritySettings()

    # CORS
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    metrics_enabled: bool = True

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return json.loads(v)
        return v

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


settings = Settings()
