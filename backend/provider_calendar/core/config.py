# backend/provider_calendar/core/config.py
import logging
import os
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment name",
    )
    log_level: str = Field(default="INFO", description="Root log level")
    structured_logs: bool = Field(default=False, description="Emit JSON log lines")

    database_url: str = Field(
        default="sqlite:///./provider_calendar.db",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = False

    # Celery / beat
    celery_broker_url: str = Field(
        default="redis://localhost:6379/0",
        description="Broker URL for the automation worker",
    )
    celery_result_backend: str | None = None

    # Automation cadence
    automation_interval_minutes: int = Field(
        default=15,
        description="Minutes between automation ticks",
    )
    reminder_minutes_before: int = Field(
        default=60,
        description="Lead time for job start reminders",
    )
    lateness_grace_minutes: int = Field(
        default=5,
        description="Minutes past scheduled start before a reservation counts as late",
    )
    lateness_window_minutes: int = Field(
        default=60,
        description="Reservations later than this are no longer alerted",
    )

    # Calendar behaviour
    upcoming_schedules_limit: int = 10
    recurrence_horizon_days: int = Field(
        default=365,
        description="Open-ended recurring availability is materialized this far ahead",
    )
    recurrence_max_occurrences: int = Field(
        default=366,
        description="Hard cap on occurrences materialized for one recurring block",
    )
    idle_gap_min_minutes: int = Field(
        default=60,
        description="Shortest idle gap reported by schedule gap detection",
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator(
        "automation_interval_minutes",
        "reminder_minutes_before",
        "lateness_window_minutes",
        "recurrence_horizon_days",
        "recurrence_max_occurrences",
    )
    @classmethod
    def _must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("lateness_grace_minutes", "idle_gap_min_minutes")
    @classmethod
    def _must_not_be_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = (value or "INFO").strip().upper()
        if normalized not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {value}")
        return normalized

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
