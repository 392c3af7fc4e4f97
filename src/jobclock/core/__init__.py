"""Core infrastructure: configuration, logging and exceptions."""

from .config import AppConfig, JobConfig, LoggingConfig, SchedulerConfig
from .exceptions import (
    DuplicateJobError,
    InvalidScheduleError,
    JobRunError,
    MalformedDurationError,
    SchedulerError,
)
from .logger import get_logger, log_exception, setup_logging

__all__ = [
    "AppConfig",
    "DuplicateJobError",
    "InvalidScheduleError",
    "JobConfig",
    "JobRunError",
    "LoggingConfig",
    "MalformedDurationError",
    "SchedulerConfig",
    "SchedulerError",
    "get_logger",
    "log_exception",
    "setup_logging",
]
