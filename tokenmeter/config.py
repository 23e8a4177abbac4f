from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "TOKENMETER_",
        "extra": "ignore",
    }

    # Session tracking (rolling window + inactivity gap)
    session_window_hours: int = 5
    session_gap_minutes: int = 10

    # Burn rate analysis
    analysis_window_minutes: int = 60
    trend_threshold_pct: float = 15.0

    # Reset schedule
    # "interval" = fixed local hours every day, "monthly" = day-of-month at 09:00
    reset_type: str = "interval"
    reset_timezone: str = "America/Los_Angeles"
    reset_hours: list[int] = [4, 9, 14, 18, 23]
    monthly_reset_day: int = 1

    # Token limit detection
    limit_minimum_sessions: int = 5
    limit_confidence_threshold: int = 80
    limit_max_lookback_days: int = 30
    limit_outlier_percentile: int = 95

    # Monitoring gates
    auto_switch_enabled: bool = True
    auto_switch_confidence: int = 80
    limit_detection_confidence: int = 75
    prediction_confidence: int = 70

    # Refresh cadence for `tokenmeter watch` (seconds)
    refresh_interval: float = 5.0

    # Logging
    log_level: str = "INFO"

    @field_validator("reset_type")
    @classmethod
    def _check_reset_type(cls, value: str) -> str:
        value = value.lower()
        if value not in ("interval", "monthly"):
            raise ValueError(f"reset_type must be 'interval' or 'monthly', got {value!r}")
        return value

    @field_validator("reset_hours")
    @classmethod
    def _check_reset_hours(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("reset_hours must contain at least one hour")
        bad = [h for h in value if not 0 <= h <= 23]
        if bad:
            raise ValueError(f"reset_hours out of range 0-23: {bad}")
        return sorted(set(value))

    @field_validator("monthly_reset_day")
    @classmethod
    def _check_reset_day(cls, value: int) -> int:
        if not 1 <= value <= 31:
            raise ValueError(f"monthly_reset_day must be 1-31, got {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        return value.upper()


settings = Settings()
