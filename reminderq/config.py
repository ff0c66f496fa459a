"""Runtime configuration."""

from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import QueuePolicy, RetentionPolicy, RetryPolicy


class Settings(BaseSettings):
    """Settings resolved from ``REMINDERQ_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="REMINDERQ_")

    data_dir: str = ".reminderq"

    # Scheduling
    tick_interval_seconds: float = 3600
    window_low_hours: float = 23
    window_high_hours: float = 25
    lead_time_hours: float = 24
    tick_timeout_seconds: float = 300

    # Workers
    worker_count: int = 2
    poll_interval_seconds: float = 1.0
    dispatch_timeout_seconds: float = 30

    # Queue policy
    max_attempts: int = 3
    backoff_type: Literal["exponential", "fixed"] = "exponential"
    backoff_delay_seconds: float = 60
    keep_completed: int = 100
    keep_failed: int = 50
    job_lease_seconds: float = 300

    # Rendering
    default_timezone: str = "Asia/Tokyo"
    default_locale: str = "ja"
    sender_name: str = "PeopleBooster"

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _lease_outlives_dispatch(self) -> "Settings":
        if self.job_lease_seconds <= self.dispatch_timeout_seconds:
            raise ValueError("job_lease_seconds must exceed dispatch_timeout_seconds")
        return self

    def queue_policy(self) -> QueuePolicy:
        return QueuePolicy(
            retry=RetryPolicy(
                max_attempts=self.max_attempts,
                backoff_type=self.backoff_type,
                backoff_delay=self.backoff_delay_seconds,
            ),
            retention=RetentionPolicy(
                keep_completed=self.keep_completed,
                keep_failed=self.keep_failed,
            ),
            lease_seconds=self.job_lease_seconds,
        )
