"""Configuration management for Time Tracker MCP."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sessions import RetentionPolicy


class TimeTrackerSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = Field(default="INFO", validation_alias="TIMETRACKER_LOG_LEVEL")
    default_timezone: str = Field(default="local", validation_alias="TIMETRACKER_DEFAULT_TIMEZONE")
    max_sessions: int = Field(default=100, validation_alias="TIMETRACKER_MAX_SESSIONS")
    max_tasks_per_session: int = Field(
        default=500, validation_alias="TIMETRACKER_MAX_TASKS_PER_SESSION"
    )
    max_session_age_hours: float = Field(
        default=24.0, validation_alias="TIMETRACKER_MAX_SESSION_AGE_HOURS"
    )
    max_inactivity_hours: float = Field(
        default=4.0, validation_alias="TIMETRACKER_MAX_INACTIVITY_HOURS"
    )
    cleanup_interval_seconds: float = Field(
        default=300.0, validation_alias="TIMETRACKER_CLEANUP_INTERVAL_SECONDS"
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "TIMETRACKER_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("default_timezone")
    @classmethod
    def _default_timezone_or_local(cls, value: str) -> str:
        return value.strip() or "local"

    @field_validator("max_sessions", "max_tasks_per_session")
    @classmethod
    def _validate_limits(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Session and task limits must be >= 1")
        return value

    @field_validator("max_session_age_hours", "max_inactivity_hours", "cleanup_interval_seconds")
    @classmethod
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Retention windows and cleanup interval must be > 0")
        return value

    def retention_policy(self) -> RetentionPolicy:
        return RetentionPolicy(
            max_session_age=timedelta(hours=self.max_session_age_hours),
            max_inactivity=timedelta(hours=self.max_inactivity_hours),
        )


@lru_cache(maxsize=1)
def get_settings() -> TimeTrackerSettings:
    """Return cached settings instance."""

    return TimeTrackerSettings()


__all__ = ["TimeTrackerSettings", "get_settings"]
