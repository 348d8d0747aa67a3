"""
Configuration management using pydantic-settings.
All settings loaded from environment variables (12-factor app).
"""

from datetime import date
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    db_path: str = Field(default="./data/socialpulse.duckdb", description="DuckDB file path")
    db_threads: int = Field(default=4, ge=1, description="DuckDB thread count")
    enable_extended_schema: bool = Field(
        default=True,
        description="Create the optional hashtag/topic tables on schema initialization",
    )

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: str = Field(default="json", description="Log format (json|console)")

    # Calendar
    local_timezone: str = Field(
        default="America/Bogota", description="Time zone used for all calendar bucketing"
    )
    data_epoch: date = Field(
        default=date(2024, 1, 1), description="Start of the 'all' window preset (UTC)"
    )

    # Scans
    scan_batch_size: int = Field(
        default=5000, ge=1, le=50000, description="Rows per internal keyset batch"
    )
    scan_max_rows: int = Field(
        default=100000, ge=1, description="Hard cap on rows read by a full-window scan"
    )

    # Sync runs
    error_message_max_length: int = Field(
        default=2000, ge=1, description="Max stored length of a failed run's error message"
    )

    # Dashboard diagnostics
    insufficient_data_threshold: int = Field(
        default=20, ge=0, description="Classified items below which data is flagged insufficient"
    )

    # Alerts
    alert_signal_version: str = Field(
        default="social-alert-v1", description="Signal version for social risk incidents"
    )
    alert_list_limit: int = Field(default=30, ge=1, description="Active alerts shown in risk view")

    # Dashboard-setting defaults applied when the singleton is first initialized
    default_focus_account: str = Field(
        default="", description="Focus account; empty selects the top SOV contributor"
    )
    default_target_quarterly_sov_pp: float = Field(default=5.0, ge=0, le=1000)
    default_target_shs: float = Field(default=70.0, ge=0, le=100)
    default_risk_threshold: float = Field(default=60.0, ge=0, le=100)
    default_sentiment_drop_threshold: float = Field(default=10.0, ge=0, le=100)
    default_er_drop_threshold: float = Field(default=5.0, ge=0, le=100)
    default_alert_cooldown_minutes: int = Field(default=60, ge=1)

    # Development
    dev_mode: bool = Field(default=True, description="Development mode")
    testing: bool = Field(default=False, description="Testing mode")

    @field_validator("local_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA zone names at startup."""
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError as e:
            raise ValueError(f"Unknown time zone: {v}") from e
        return v

    @property
    def tz(self) -> ZoneInfo:
        """Resolved local time zone."""
        return ZoneInfo(self.local_timezone)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return Settings()
