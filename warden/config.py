"""Warden configuration system using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_RETENTION_MIN_DAYS = 7
LOG_RETENTION_MAX_DAYS = 365


def clamp_retention_days(days: int) -> int:
    return max(LOG_RETENTION_MIN_DAYS, min(LOG_RETENTION_MAX_DAYS, int(days)))


class WardenConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables.

    Out-of-range numbers are clamped to safe bounds instead of rejected so a
    bad setting never takes the gate down.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "WARDEN"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000

    # Database
    database_url: str = "sqlite+aiosqlite:///./warden.db"

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Admin API
    admin_api_key: Optional[str] = None

    # Rate limiting
    rate_limit: int = 10  # requests per window before blocking
    rate_window_seconds: int = 600
    block_duration_seconds: int = 3600
    rate_limiter_shards: int = 64
    rate_limiter_max_tracked: int = 10000

    # Allow / deny lists, one address or CIDR per line
    allow_list: str = ""
    deny_list: str = ""
    crawler_exempt: bool = True
    trust_forwarded_headers: bool = True

    # Bypass detection
    bypass_same_resource_threshold: int = 5
    bypass_same_resource_window_seconds: int = 300
    bypass_api_hourly_threshold: int = 20

    # Access log
    log_retention_days: int = LOG_RETENTION_MIN_DAYS
    log_query_max_limit: int = 500
    retention_cleanup_interval_hours: int = 24

    # Crawler range mining (0 disables the background job)
    mining_interval_hours: int = 0
    mining_window_days: int = 7
    mining_min_hits: int = 3

    @field_validator("rate_limit")
    @classmethod
    def clamp_rate_limit(cls, v: int) -> int:
        return max(1, min(v, 100_000))

    @field_validator("rate_window_seconds", "block_duration_seconds")
    @classmethod
    def clamp_durations(cls, v: int) -> int:
        return max(1, min(v, 30 * 86400))

    @field_validator("log_retention_days")
    @classmethod
    def clamp_log_retention(cls, v: int) -> int:
        return clamp_retention_days(v)

    @field_validator("log_query_max_limit")
    @classmethod
    def clamp_query_limit(cls, v: int) -> int:
        return max(1, min(v, 500))

    @field_validator(
        "rate_limiter_shards",
        "rate_limiter_max_tracked",
        "bypass_same_resource_threshold",
        "bypass_same_resource_window_seconds",
        "bypass_api_hourly_threshold",
        "retention_cleanup_interval_hours",
        "mining_min_hits",
    )
    @classmethod
    def clamp_positive(cls, v: int) -> int:
        return max(1, v)

    @field_validator("mining_interval_hours")
    @classmethod
    def clamp_non_negative(cls, v: int) -> int:
        return max(0, v)

    @field_validator("mining_window_days")
    @classmethod
    def clamp_mining_window(cls, v: int) -> int:
        return max(1, min(v, 365))

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent.parent


def get_config() -> WardenConfig:
    """Factory function to create config instance."""
    return WardenConfig()
