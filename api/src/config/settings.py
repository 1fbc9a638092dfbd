"""Service settings loaded from the environment (and ``.env``)."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SourceName = Literal["SYSTEM", "SOCIAL"]


class Settings(BaseSettings):
    """Feed service configuration.

    Environment variables use the upper-cased field name, e.g.
    ``BACKEND_BASE_URL`` or ``UNREAD_POLL_INTERVAL_SECONDS``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "notification-feed"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production", "testing"] = (
        "development"
    )
    debug: bool = True
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Notifications backend; the base URL already includes the API version
    backend_base_url: str = "http://localhost:5000/api/v1"
    backend_timeout_seconds: float = Field(default=30.0, gt=0)
    backend_access_token: str | None = None

    # Feed engine
    feed_page_size: int = Field(default=10, ge=1, le=100)
    feed_sources: list[SourceName] = Field(
        default=["SYSTEM", "SOCIAL"],
        min_length=1,
        description="Categories merged into the feed; order breaks timestamp ties",
    )
    unread_poll_enabled: bool = True
    unread_poll_interval_seconds: float = Field(default=30.0, gt=0)
    # Feeds without a WebSocket subscriber are closed after this much inactivity
    feed_idle_timeout_seconds: float = Field(default=300.0, gt=0)
    feed_sweep_interval_seconds: float = Field(default=60.0, gt=0)

    # Realtime invalidation over Redis Pub/Sub (optional)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 5.0
    redis_socket_connect_timeout: float = 5.0

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"
    log_format: Literal["json", "console"] = "console"
    log_include_caller_info: bool = True
    log_dir: str = "logs"
    log_file_max_bytes: int = 10 * 1024 * 1024
    log_file_backup_count: int = 5
    log_requests: bool = True
    log_exclude_paths: list[str] = ["/health"]

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]
    cors_max_age: int = 600

    @field_validator("backend_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("feed_sources")
    @classmethod
    def unique_sources(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            msg = "feed_sources must not repeat a category"
            raise ValueError(msg)
        return value

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
