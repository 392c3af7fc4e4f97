"""Module level shortcuts bound to one shared scheduler.

For programs that need a single scheduler. Anything more involved should
construct :class:`~jobclock.scheduler.Scheduler` instances directly.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from .jobs.base import Job
from .scheduler.scheduler import JobEntry, Scheduler
from .scheduler.timespec import JobOptions, RecurrenceSpec

_default: Scheduler | None = None
_default_lock = threading.Lock()


def get_default_scheduler() -> Scheduler:
    """Return the shared scheduler, creating it on first use."""
    global _default
    with _default_lock:
        if _default is None:
            _default = Scheduler()
        return _default


def set_default_scheduler(scheduler: Scheduler | None) -> None:
    """Replace the shared scheduler. ``None`` resets it to a fresh one on next use."""
    global _default
    with _default_lock:
        _default = scheduler


def schedule(name: str, job: Job | Callable[[], Any], when: RecurrenceSpec) -> JobEntry:
    return get_default_scheduler().schedule(name, job, when)


def schedule_with_options(
    name: str, job: Job | Callable[[], Any], options: JobOptions
) -> JobEntry:
    return get_default_scheduler().schedule_with_options(name, job, options)


def cancel(name: str, wait: bool = False) -> bool:
    """Cancel a job on the shared scheduler. A run in progress completes."""
    return get_default_scheduler().cancel(name, wait=wait)


def start(wait: bool = True) -> None:
    get_default_scheduler().start(wait=wait)


def shutdown(wait: bool = False) -> None:
    get_default_scheduler().shutdown(wait=wait)


__all__ = [
    "cancel",
    "get_default_scheduler",
    "schedule",
    "schedule_with_options",
    "set_default_scheduler",
    "shutdown",
    "start",
]
