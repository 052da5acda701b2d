"""Application configuration via pydantic-settings.

Values are read from environment variables (or a .env file).
Settings are organized into logical groups and composed into a single Settings object.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueSettings(BaseSettings):
    """Triage queue and wait-time thresholds."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    wait_threshold_minutes: int = Field(
        default=15,
        ge=0,
        description="Minutes a checked-in patient may wait before being flagged",
    )
    long_queue_length: int = Field(
        default=10,
        ge=1,
        description="Queue length at which a long-queue alert is raised",
    )


class RefreshSettings(BaseSettings):
    """Polling cadence for caller-level refresh loops (seconds)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    stats_refresh_interval: float = Field(default=60.0, gt=0, description="Statistics refresh interval")
    queue_refresh_interval: float = Field(default=5.0, gt=0, description="Active queue refresh interval")
    status_refresh_interval: float = Field(default=10.0, gt=0, description="Single appointment status poll")
    backoff_factor: float = Field(default=2.0, ge=1.0, description="Multiplier applied after each failure")
    max_refresh_interval: float = Field(default=300.0, gt=0, description="Upper bound for backed-off delay")


class BackendSettings(BaseSettings):
    """Clinic REST backend that stores appointments."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    backend_api_url: str = Field(default="http://localhost:8000/api", description="Backend base URL")
    backend_api_token: str = Field(default="", description="Bearer token for the backend API")
    backend_timeout: float = Field(default=10.0, gt=0, description="Request timeout in seconds")


class NotificationSettings(BaseSettings):
    """Recipients for operational alerts."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    alert_recipients: str = Field(
        default="",
        description="Comma-separated recipient identifiers (front desk, on-call staff)",
    )

    @property
    def recipients(self) -> list[str]:
        """Parse comma-separated recipients into a list."""
        if not self.alert_recipients:
            return []
        return [r.strip() for r in self.alert_recipients.split(",") if r.strip()]


class Settings(BaseSettings):
    """Root settings composing all sub-settings.

    Usage:
        settings = Settings()
        settings.queue.wait_threshold_minutes
        settings.refresh.stats_refresh_interval
        settings.notifications.recipients
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    queue: QueueSettings = Field(default_factory=QueueSettings)
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            msg = f"Invalid log level: {v}. Must be one of {valid}"
            raise ValueError(msg)
        return upper

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


# Module-level singleton, import this wherever settings are needed.
settings = Settings()
