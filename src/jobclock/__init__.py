"""jobclock: an in-process job scheduler with automatic retry.

Register named jobs with a recurrence, start the scheduler, and each job
fires on its own timer, retried on failure and re-armed for the next run.

Example:
    ```python
    from jobclock import JobOptions, RecurrenceSpec, Scheduler, every

    scheduler = Scheduler()
    scheduler.schedule("ping", ping, RecurrenceSpec(every=every(10).seconds))
    scheduler.schedule_with_options(
        "report",
        build_report,
        JobOptions(
            recurrence=RecurrenceSpec(every=every(1).weeks, on="sun", at="12:00"),
            retry_count=2,
        ),
    )
    scheduler.start()
    ```
"""

from importlib.metadata import PackageNotFoundError, version

from .core import (
    AppConfig,
    DuplicateJobError,
    InvalidScheduleError,
    JobRunError,
    MalformedDurationError,
    SchedulerConfig,
    SchedulerError,
    get_logger,
    setup_logging,
)
from .facade import (
    cancel,
    get_default_scheduler,
    schedule,
    schedule_with_options,
    set_default_scheduler,
    shutdown,
    start,
)
from .jobs import CommandJob, FunctionJob, Job
from .scheduler import (
    DayOfWeek,
    Every,
    JobOptions,
    RecurrenceSpec,
    Scheduler,
    TimeUnit,
    every,
    parse_duration,
)

__all__ = [
    "__version__",
    "AppConfig",
    "CommandJob",
    "DayOfWeek",
    "DuplicateJobError",
    "Every",
    "FunctionJob",
    "InvalidScheduleError",
    "Job",
    "JobOptions",
    "JobRunError",
    "MalformedDurationError",
    "RecurrenceSpec",
    "Scheduler",
    "SchedulerConfig",
    "SchedulerError",
    "TimeUnit",
    "cancel",
    "every",
    "get_default_scheduler",
    "get_logger",
    "parse_duration",
    "schedule",
    "schedule_with_options",
    "set_default_scheduler",
    "setup_logging",
    "shutdown",
    "start",
]

try:  # pragma: no cover - best-effort during development
    __version__ = version("jobclock")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"
