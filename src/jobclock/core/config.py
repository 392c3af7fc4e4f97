"""Configuration management for jobclock.

This module provides configuration models and loading functionality using Pydantic
for validation and type safety.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from ..jobs.command import CommandJob
    from ..scheduler.timespec import JobOptions, RecurrenceSpec

_DOTENV_LOADED = False

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _load_env_once() -> None:
    """Load environment variables from a .env file exactly once."""

    global _DOTENV_LOADED
    if not _DOTENV_LOADED:
        load_dotenv()
        _DOTENV_LOADED = True


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in configuration data."""

    if isinstance(data, str):
        return os.path.expandvars(data)
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    return data


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format for file output",
    )
    log_file: str | None = Field(default=None, description="Log file path")
    max_bytes: int = Field(default=10485760, description="Max log file size (10MB)")
    backup_count: int = Field(default=5, description="Number of backup files")
    show_path: bool = Field(default=False, description="Show source path in console logs")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"level must be one of {sorted(_LOG_LEVELS)}")
        return level


class SchedulerConfig(BaseModel):
    """Configuration for the job scheduler."""

    default_retry_count: int = Field(
        default=0,
        ge=0,
        description="Extra attempts after a failed run when a job sets no retry count",
    )
    timer_daemon: bool = Field(
        default=True, description="Run job timers on daemon threads"
    )

    # Hooks
    logging_hook_enabled: bool = Field(default=True, description="Enable logging hook")
    metrics_hook_enabled: bool = Field(default=True, description="Enable metrics hook")
    metrics_history_size: int = Field(
        default=1000, ge=1, description="Run results kept by the metrics hook"
    )


class JobConfig(BaseModel):
    """A command job declared in the configuration file."""

    name: str = Field(..., description="Unique job name")
    command: str | list[str] = Field(..., description="Command line to run")
    enabled: bool = Field(default=True, description="Whether this job is scheduled")

    each: str | None = Field(default=None, description="Duration string, e.g. '2h3m'")
    every: int | None = Field(default=None, description="Interval count")
    unit: str = Field(default="second", description="Interval unit")
    on: str | None = Field(default=None, description="Day of week, e.g. 'sun'")
    at: str | None = Field(default=None, description="Clock time pattern HH:MM")
    last_run: datetime | None = Field(default=None, description="Anchor for the first run")

    retry_count: int | None = Field(default=None, ge=0, description="Extra attempts on failure")
    timeout: float | None = Field(default=None, gt=0, description="Process timeout in seconds")

    cwd: str | None = Field(default=None, description="Working directory for the command")
    env: dict[str, str] = Field(default_factory=dict, description="Extra environment variables")

    @field_validator("command")
    @classmethod
    def validate_command(cls, value: str | list[str]) -> str | list[str]:
        if not value or (isinstance(value, str) and not value.strip()):
            raise ValueError("command must not be empty")
        return value

    @field_validator("unit")
    @classmethod
    def validate_unit(cls, value: str) -> str:
        from ..scheduler.timespec import TimeUnit

        return TimeUnit.parse(value).value

    @field_validator("on")
    @classmethod
    def validate_on(cls, value: str | None) -> str | None:
        if value is None:
            return None
        from ..scheduler.timespec import DayOfWeek

        return DayOfWeek.parse(value).value

    @model_validator(mode="after")
    def validate_schedule_present(self) -> JobConfig:
        if not any([self.each, self.every is not None, self.on, self.at]):
            raise ValueError(f"Job '{self.name}' needs one of each, every, on or at")
        return self

    def to_recurrence(self) -> RecurrenceSpec:
        from ..scheduler.timespec import Every, RecurrenceSpec

        return RecurrenceSpec(
            last_run=self.last_run,
            each=self.each,
            every=Every(self.unit, self.every) if self.every is not None else None,
            on=self.on,
            at=self.at,
        )

    def to_options(self) -> JobOptions:
        from ..scheduler.timespec import JobOptions

        return JobOptions(
            recurrence=self.to_recurrence(),
            retry_count=self.retry_count,
            timeout=timedelta(seconds=self.timeout) if self.timeout else None,
        )

    def build_job(self) -> CommandJob:
        from ..jobs.command import CommandJob

        if isinstance(self.command, str):
            return CommandJob.from_string(
                self.command, cwd=self.cwd, env=self.env or None, timeout=self.timeout
            )
        return CommandJob(
            list(self.command), cwd=self.cwd, env=self.env or None, timeout=self.timeout
        )


class AppConfig(BaseSettings):
    """Main configuration for a jobclock process."""

    model_config = SettingsConfigDict(
        env_prefix="JOBCLOCK_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    scheduler: SchedulerConfig = Field(
        default_factory=SchedulerConfig, description="Scheduler configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    jobs: list[JobConfig] = Field(default_factory=list, description="Scheduled command jobs")

    @field_validator("jobs")
    @classmethod
    def validate_unique_names(cls, value: list[JobConfig]) -> list[JobConfig]:
        seen: set[str] = set()
        for job in value:
            if job.name in seen:
                raise ValueError(f"Duplicate job name: {job.name}")
            seen.add(job.name)
        return value

    @classmethod
    def from_yaml(cls, path: str | Path) -> AppConfig:
        """Load configuration from a YAML file."""

        _load_env_once()
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as handle:
            try:
                config_data = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                raise ValueError(f"Invalid YAML in config file: {exc}") from exc

        if not config_data:
            config_data = {}

        config_data = _expand_env_vars(config_data)
        return cls(**config_data)

    @classmethod
    def from_json(cls, path: str | Path) -> AppConfig:
        """Load configuration from a JSON file."""

        import json

        _load_env_once()
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as handle:
            try:
                config_data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON in config file: {exc}") from exc

        config_data = _expand_env_vars(config_data)
        return cls(**config_data)

    @classmethod
    def load(cls, path: str | Path) -> AppConfig:
        """Load configuration, picking the parser from the file suffix."""
        if Path(path).suffix.lower() == ".json":
            return cls.from_json(path)
        return cls.from_yaml(path)

    def get_job(self, name: str) -> JobConfig | None:
        """Get job configuration by name."""
        for job in self.jobs:
            if job.name == name:
                return job
        return None

    def enabled_jobs(self) -> list[JobConfig]:
        return [job for job in self.jobs if job.enabled]

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""

        return self.model_dump()
