"""Scheduler package: recurrence resolution and the timer based job scheduler.

This package provides:
- Recurrence specs with interval, weekday and clock-time alignment
- Duration string parsing ("2h3m", "300ms")
- A thread-timer scheduler with bounded retry and safe cancellation
- Run hooks for logging and metrics
"""

from .durations import format_duration, is_valid_duration, parse_duration
from .hooks import (
    HookPriority,
    HookRegistry,
    JobHook,
    JobMetrics,
    JobRunContext,
    JobRunResult,
    LoggingHook,
    MetricsHook,
    create_default_hook_registry,
)
from .scheduler import JobEntry, JobState, Scheduler
from .timespec import (
    ClockTime,
    DayOfWeek,
    Every,
    JobOptions,
    RecurrenceSpec,
    TimeUnit,
    align_to,
    duration,
    every,
    next_fire_time,
    next_run,
    parse_clock_time,
    upcoming,
    validate,
)

__all__ = [
    # Scheduler
    "JobEntry",
    "JobState",
    "Scheduler",
    # Recurrence
    "ClockTime",
    "DayOfWeek",
    "Every",
    "JobOptions",
    "RecurrenceSpec",
    "TimeUnit",
    "align_to",
    "duration",
    "every",
    "next_fire_time",
    "next_run",
    "parse_clock_time",
    "upcoming",
    "validate",
    # Durations
    "format_duration",
    "is_valid_duration",
    "parse_duration",
    # Hooks
    "HookPriority",
    "HookRegistry",
    "JobHook",
    "JobMetrics",
    "JobRunContext",
    "JobRunResult",
    "LoggingHook",
    "MetricsHook",
    "create_default_hook_registry",
]
