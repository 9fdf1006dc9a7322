"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated via env_nested_delimiter="__", so DATABASE__HOST maps to
database.host, UPLOAD__MAX_BYTES to upload.max_bytes, etc.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class DatabaseSettings(BaseModel):
    """
    PostgreSQL connection configuration.

    Accepts either a full connection string via DATABASE__DSN or individual
    components (host, port, name, username, password). The DSN takes priority
    when both are provided.
    """

    dsn: SecretStr | None = Field(
        default=None,
        description="Full PostgreSQL connection string (overrides individual fields)",
    )

    host: str | None = Field(default=None, description="PostgreSQL host")
    port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    name: str | None = Field(default=None, description="PostgreSQL database name")
    username: str | None = Field(default=None, description="PostgreSQL username")
    password: SecretStr | None = Field(default=None, description="PostgreSQL password")

    @model_validator(mode="after")
    def resolve_dsn(self) -> DatabaseSettings:
        """Build the DSN from components when no full DSN was given."""
        if self.dsn is not None:
            return self
        missing = [f for f, v in [
            ("DATABASE__HOST", self.host),
            ("DATABASE__NAME", self.name),
            ("DATABASE__USERNAME", self.username),
            ("DATABASE__PASSWORD", self.password),
        ] if not v]
        if missing:
            raise ValueError("Set DATABASE__DSN or provide all of: " + ", ".join(missing))
        dsn_value = (
            f"postgresql://{self.username}:{self.password.get_secret_value()}"  # type: ignore[union-attr]
            f"@{self.host}:{self.port}/{self.name}"
        )
        object.__setattr__(self, "dsn", SecretStr(dsn_value))
        return self

    def get_dsn(self) -> str:
        assert self.dsn is not None  # guaranteed by resolve_dsn validator
        return self.dsn.get_secret_value()


class SchedulerSettings(BaseModel):
    """
    Monitoring schedule as a standard 5-field cron expression.

    Format: minute hour day-of-month month day-of-week
    Examples:
      "0 * * * *"    — every hour (default)
      "0 8 * * *"    — daily at 08:00
      "*/15 * * * *" — every 15 minutes
    """

    cron: str = Field(
        default="0 * * * *",
        description="Cron expression (5 fields: minute hour dom month dow)",
    )

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, value: str) -> str:
        fields = value.strip().split()
        if len(fields) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(fields)}: {value!r}"
            )
        return value.strip()


class UploadSettings(BaseModel):
    """Limits applied to uploaded certificate files."""

    max_bytes: int = Field(default=5 * 1024 * 1024, gt=0, description="Maximum upload size")


class MonitoringSettings(BaseModel):
    """Monitoring check tuning."""

    history_limit: int = Field(default=100, ge=1, description="History entries kept")
    repeat_after_hours: float = Field(
        default=20,
        gt=0,
        le=24,
        description="A notification day is not tracked again within this many hours",
    )

    @property
    def repeat_after(self) -> timedelta:
        return timedelta(hours=self.repeat_after_hours)


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseSettings
    scheduler: SchedulerSettings = Field(default_factory=lambda: SchedulerSettings())
    upload: UploadSettings = Field(default_factory=lambda: UploadSettings())
    monitoring: MonitoringSettings = Field(default_factory=lambda: MonitoringSettings())

    run_on_startup: bool = Field(default=False)
    log_level: str = Field(default="INFO")
