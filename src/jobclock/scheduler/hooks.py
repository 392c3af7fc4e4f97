"""Job run hooks for the scheduler."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..core.logger import get_logger

if TYPE_CHECKING:
    from ..core.config import SchedulerConfig

logger = get_logger("scheduler.hooks")


class HookPriority(int, Enum):
    """Priority levels for hook execution order."""

    HIGHEST = 0
    HIGH = 25
    NORMAL = 50
    LOW = 75
    LOWEST = 100


@dataclass
class JobRunContext:
    """Context information for one firing of a job."""

    job_name: str
    scheduled_time: datetime | None
    actual_start_time: datetime
    recurrence: str = ""
    run_count: int = 0
    max_attempts: int = 1
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_name": self.job_name,
            "scheduled_time": self.scheduled_time.isoformat() if self.scheduled_time else None,
            "actual_start_time": self.actual_start_time.isoformat(),
            "recurrence": self.recurrence,
            "run_count": self.run_count,
            "max_attempts": self.max_attempts,
        }


@dataclass
class JobRunResult:
    """Result of one firing, after retries."""

    job_name: str
    success: bool
    attempts: int
    start_time: datetime
    end_time: datetime
    duration: float
    error: Exception | None = None
    error_message: str | None = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_name": self.job_name,
            "success": self.success,
            "attempts": self.attempts,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration": self.duration,
            "error_message": self.error_message,
            "skipped": self.skipped,
        }


class JobHook(ABC):
    """Base class for job run hooks."""

    priority: HookPriority = HookPriority.NORMAL

    @abstractmethod
    def before_run(self, context: JobRunContext) -> bool:
        """Called before a firing. Return False to skip it."""
        pass

    @abstractmethod
    def after_run(self, context: JobRunContext, result: JobRunResult) -> None:
        """Called after a firing completes, successfully or not."""
        pass

    def on_attempt_error(self, context: JobRunContext, error: Exception, attempt: int) -> None:
        """Called each time a single attempt raises."""
        pass


class LoggingHook(JobHook):
    """Hook that logs job run details."""

    priority = HookPriority.HIGHEST

    def __init__(self, log_level: str = "INFO") -> None:
        self._log = getattr(logger, log_level.lower(), logger.info)

    def before_run(self, context: JobRunContext) -> bool:
        self._log(f"Job starting: {context.job_name} (run #{context.run_count})")
        return True

    def after_run(self, context: JobRunContext, result: JobRunResult) -> None:
        if result.skipped:
            self._log(f"Job skipped: {context.job_name}")
        elif result.success:
            self._log(
                f"Job completed: {context.job_name} "
                f"({result.duration:.3f}s, {result.attempts} attempt(s))"
            )
        else:
            logger.warning(
                f"Job failed after {result.attempts} attempt(s): {context.job_name} "
                f"({result.duration:.3f}s, error: {result.error_message})"
            )

    def on_attempt_error(self, context: JobRunContext, error: Exception, attempt: int) -> None:
        if attempt < context.max_attempts:
            self._log(
                f"Job {context.job_name} attempt {attempt}/{context.max_attempts} failed: "
                f"{error}; retrying"
            )


@dataclass
class JobMetrics:
    """Metrics for a single job."""

    job_name: str
    run_count: int = 0
    attempt_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_duration: float = 0.0
    min_duration: float = 0.0
    max_duration: float = 0.0
    last_duration: float = 0.0
    last_run: datetime | None = None

    @property
    def success_rate(self) -> float:
        return (self.success_count / self.run_count * 100) if self.run_count else 0.0

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.run_count if self.run_count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_name": self.job_name,
            "run_count": self.run_count,
            "attempt_count": self.attempt_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "success_rate": round(self.success_rate, 2),
            "average_duration": round(self.average_duration, 3),
            "last_run": self.last_run.isoformat() if self.last_run else None,
        }


class MetricsHook(JobHook):
    """Hook that collects job run metrics."""

    priority = HookPriority.HIGH

    def __init__(self, max_history: int = 1000) -> None:
        self._metrics: dict[str, JobMetrics] = {}
        self._history: list[JobRunResult] = []
        self._max_history = max_history
        self._lock = threading.Lock()

    def before_run(self, context: JobRunContext) -> bool:
        return True

    def after_run(self, context: JobRunContext, result: JobRunResult) -> None:
        if result.skipped:
            return
        with self._lock:
            m = self._metrics.setdefault(context.job_name, JobMetrics(job_name=context.job_name))
            m.run_count += 1
            m.attempt_count += result.attempts
            if result.success:
                m.success_count += 1
            else:
                m.failure_count += 1
            m.total_duration += result.duration
            m.last_run = result.end_time
            m.last_duration = result.duration
            if m.min_duration == 0 or result.duration < m.min_duration:
                m.min_duration = result.duration
            if result.duration > m.max_duration:
                m.max_duration = result.duration
            self._history.append(result)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history :]

    def get_metrics(self, job_name: str | None = None) -> dict[str, Any]:
        with self._lock:
            if job_name:
                m = self._metrics.get(job_name)
                return m.to_dict() if m else {}
            return {name: m.to_dict() for name, m in self._metrics.items()}

    def get_history(self, job_name: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        with self._lock:
            history = [h for h in self._history if job_name is None or h.job_name == job_name]
            return [h.to_dict() for h in history[-limit:]]


class HookRegistry:
    """Registry for managing job run hooks."""

    def __init__(self) -> None:
        self._hooks: list[JobHook] = []
        self._lock = threading.Lock()

    def register(self, hook: JobHook) -> None:
        with self._lock:
            self._hooks.append(hook)
            self._hooks.sort(key=lambda h: h.priority)
        logger.debug(f"Registered hook: {hook.__class__.__name__}")

    def unregister(self, hook: JobHook) -> bool:
        with self._lock:
            if hook in self._hooks:
                self._hooks.remove(hook)
                return True
            return False

    def get_hooks(self) -> list[JobHook]:
        with self._lock:
            return list(self._hooks)

    def find(self, hook_type: type[JobHook]) -> JobHook | None:
        for hook in self.get_hooks():
            if isinstance(hook, hook_type):
                return hook
        return None

    def clear(self) -> None:
        with self._lock:
            self._hooks.clear()

    def before_run(self, context: JobRunContext) -> bool:
        for hook in self.get_hooks():
            try:
                if not hook.before_run(context):
                    return False
            except Exception as e:
                logger.error(f"Hook {hook.__class__.__name__} failed: {e}")
        return True

    def after_run(self, context: JobRunContext, result: JobRunResult) -> None:
        for hook in self.get_hooks():
            try:
                hook.after_run(context, result)
            except Exception as e:
                logger.error(f"Hook {hook.__class__.__name__} failed: {e}")

    def on_attempt_error(self, context: JobRunContext, error: Exception, attempt: int) -> None:
        for hook in self.get_hooks():
            try:
                hook.on_attempt_error(context, error, attempt)
            except Exception as e:
                logger.error(f"Hook {hook.__class__.__name__} failed: {e}")


def create_default_hook_registry(config: SchedulerConfig | None = None) -> HookRegistry:
    """Create a hook registry with the hooks enabled in ``config``."""
    registry = HookRegistry()
    if config is None or config.logging_hook_enabled:
        registry.register(LoggingHook())
    if config is None or config.metrics_hook_enabled:
        history = config.metrics_history_size if config is not None else 1000
        registry.register(MetricsHook(max_history=history))
    return registry


__all__ = [
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
