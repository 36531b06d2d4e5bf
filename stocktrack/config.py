"""Configuration management for the stock tracking engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Store Configuration
    local_redis_url: str = Field(
        default="redis://localhost:6379/0", description="On-device store URL"
    )
    remote_redis_url: str | None = Field(
        default=None, description="Remote document store URL (unset disables it)"
    )
    store_timeout: float = Field(
        default=10.0, gt=0, description="Timeout in seconds for a single store call"
    )

    # API Configuration
    api_port: int = Field(default=8000, description="API server port")
    api_host: str = Field(default="0.0.0.0", description="API server host")

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log format")

    # Sync Scheduling
    local_sync_interval: float = Field(
        default=15 * 60, gt=0, description="Seconds between local decrement passes"
    )
    remote_sync_interval: float = Field(
        default=60 * 60, gt=0, description="Seconds between remote decrement passes"
    )
    run_interval_buffer: float = Field(
        default=0.5,
        ge=0,
        lt=1,
        description="Fraction of an interval an early trigger may still run in",
    )
    sync_on_foreground: bool = Field(
        default=True, description="Run a sync when the host app is foregrounded"
    )
    max_backoff_exponent: int = Field(
        default=4, ge=0, description="Cap for the failure back-off exponent"
    )
    mirror_remote_to_local: bool = Field(
        default=True, description="Copy remote decrements into the local store"
    )

    # Stock Alert Settings
    default_min_stock_level: int = Field(
        default=10, ge=0, description="Low stock threshold when an item sets none"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper

    @property
    def remote_configured(self) -> bool:
        """Whether a remote store URL has been provided."""
        return bool(self.remote_redis_url)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
