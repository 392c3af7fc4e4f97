"""Timer based job scheduler with bounded retry.

Each registered job gets its own one-shot ``threading.Timer``. When the
timer fires the job runs (retrying failed attempts back to back), its anchor
moves to the completion time and, for recurring jobs, a fresh timer is armed
from the updated anchor.

Example:
    ```python
    from jobclock import RecurrenceSpec, Scheduler, every

    scheduler = Scheduler()
    scheduler.schedule("heartbeat", ping, RecurrenceSpec(every=every(30).seconds))
    scheduler.start()  # blocks until every job is done or cancelled
    ```
"""

from __future__ import annotations

import dataclasses
import threading
import time
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any

from ..core.config import SchedulerConfig
from ..core.exceptions import (
    DuplicateJobError,
    InvalidScheduleError,
    JobRunError,
    SchedulerError,
)
from ..core.logger import get_logger, log_exception
from ..jobs.base import Job, as_job
from .durations import format_duration
from .hooks import (
    HookRegistry,
    JobRunContext,
    JobRunResult,
    MetricsHook,
    create_default_hook_registry,
)
from .timespec import ZERO, JobOptions, RecurrenceSpec, align_to, next_run, validate

logger = get_logger("scheduler")


class JobState(str, Enum):
    DORMANT = "dormant"
    ARMED = "armed"
    RUNNING = "running"
    DONE = "done"


class JobEntry:
    """A registered job and its timer.

    The entry owns its timer and replaces it on every re-arm. It reports
    completion through the ``on_done`` callback handed to :meth:`arm`; the
    callback fires exactly once per arm cycle, when the entry reaches
    ``DONE``.
    """

    def __init__(
        self,
        name: str,
        job: Job,
        options: JobOptions,
        retry_count: int,
        hooks: HookRegistry,
        clock: Callable[[], datetime] = datetime.now,
        daemon: bool = True,
    ) -> None:
        self.name = name
        self.job = job
        self.options = options
        self.recurrence: RecurrenceSpec = options.recurrence  # type: ignore[assignment]
        self.retry_count = retry_count
        self.recurring = self.recurrence.is_recurring
        self.run_count = 0
        self.next_run_time: datetime | None = None

        self._hooks = hooks
        self._clock = clock
        self._daemon = daemon
        self._timer: threading.Timer | None = None
        self._state = JobState.DORMANT
        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._finished = threading.Event()
        self._on_done: Callable[[JobEntry], None] | None = None

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def last_run(self) -> datetime | None:
        return self.recurrence.last_run

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def arm(self, on_done: Callable[[JobEntry], None] | None = None) -> None:
        """Start the timer for the next run.

        If resolving the next run raises, the entry is left dormant and
        ``on_done`` is never called.
        """
        with self._lock:
            self._on_done = on_done
            try:
                self._arm_locked()
            except Exception:
                self._on_done = None
                raise

    def _arm_locked(self) -> None:
        if self._cancelled.is_set():
            if self._timer is not None:
                self._timer.cancel()
            self._finish_locked()
            return

        now = align_to(self._clock(), self.recurrence.last_run)
        if self.recurrence.last_run is None:
            self.recurrence.last_run = now
        wait = next_run(self.recurrence, self.recurrence.last_run, now=now)
        if wait <= ZERO:
            logger.error(f"Job {self.name}: no future run for '{self.recurrence}', stopping")
            self._finish_locked()
            return

        self.next_run_time = now + wait
        self._timer = threading.Timer(wait.total_seconds(), self._fire)
        self._timer.daemon = self._daemon
        self._timer.name = f"jobclock-{self.name}"
        self._state = JobState.ARMED
        self._timer.start()
        logger.debug(f"Job {self.name} armed, next run in {format_duration(wait)}")

    def _fire(self) -> None:
        with self._lock:
            if self._cancelled.is_set() or self._state is not JobState.ARMED:
                return
            self._state = JobState.RUNNING
            self.run_count += 1
            scheduled, self.next_run_time = self.next_run_time, None

        try:
            self.run_with_retry(scheduled)
        finally:
            with self._lock:
                self.recurrence.last_run = align_to(self._clock(), self.recurrence.last_run)
                if not self.recurring:
                    self._finish_locked()
                    return
                try:
                    self._arm_locked()
                except Exception as exc:
                    log_exception(logger, exc, f"Job {self.name}: cannot re-arm, stopping")
                    self._finish_locked()

    def run_with_retry(self, scheduled_time: datetime | None = None) -> JobRunResult:
        """Run the job, retrying up to ``retry_count`` extra times.

        Failures are reported to hooks and never raised.
        """
        max_attempts = self.retry_count + 1
        start_time = self._clock()
        context = JobRunContext(
            job_name=self.name,
            scheduled_time=scheduled_time,
            actual_start_time=start_time,
            recurrence=str(self.recurrence),
            run_count=self.run_count,
            max_attempts=max_attempts,
            metadata=dict(self.options.metadata),
        )

        if not self._hooks.before_run(context):
            result = JobRunResult(
                job_name=self.name,
                success=True,
                attempts=0,
                start_time=start_time,
                end_time=start_time,
                duration=0.0,
                skipped=True,
            )
            self._hooks.after_run(context, result)
            return result

        started = time.monotonic()
        error: Exception | None = None
        attempt = 0
        while attempt < max_attempts:
            attempt += 1
            try:
                self.job.run()
            except Exception as exc:
                if isinstance(exc, JobRunError):
                    exc.job_name = exc.job_name or self.name
                    exc.attempt = attempt
                error = exc
                logger.debug(f"Job {self.name} attempt {attempt} failed: {exc}", exc_info=True)
                self._hooks.on_attempt_error(context, exc, attempt)
                continue
            error = None
            break

        result = JobRunResult(
            job_name=self.name,
            success=error is None,
            attempts=attempt,
            start_time=start_time,
            end_time=self._clock(),
            duration=time.monotonic() - started,
            error=error,
            error_message=str(error) if error is not None else None,
        )
        self._hooks.after_run(context, result)
        return result

    def cancel(self) -> bool:
        """Stop future runs. Returns True if a run is in flight right now."""
        with self._lock:
            self._cancelled.set()
            if self._timer is not None:
                self._timer.cancel()
            if self._state is JobState.ARMED:
                self._finish_locked()
            elif self._state is JobState.DORMANT:
                self._state = JobState.DONE
                self._finished.set()
            return self._state is JobState.RUNNING

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the entry is done. Returns False on timeout."""
        return self._finished.wait(timeout)

    def in_own_thread(self) -> bool:
        """True when called from inside this entry's running job."""
        return threading.current_thread() is self._timer

    def _finish_locked(self) -> None:
        self._state = JobState.DONE
        self.next_run_time = None
        self._finished.set()
        on_done, self._on_done = self._on_done, None
        if on_done is not None:
            on_done(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "job": repr(self.job),
            "recurrence": str(self.recurrence),
            "recurring": self.recurring,
            "state": self._state.value,
            "retry_count": self.retry_count,
            "run_count": self.run_count,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run_time": self.next_run_time.isoformat() if self.next_run_time else None,
        }

    def __repr__(self) -> str:
        return f"JobEntry({self.name!r}, {self.recurrence}, state={self._state.value})"


class Scheduler:
    """Manages a set of named, scheduled jobs.

    Jobs registered before :meth:`start` stay dormant until it is called;
    jobs registered afterwards are armed immediately.
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        hooks: HookRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the scheduler.

        Args:
            config: Scheduler configuration
            hooks: Hook registry; defaults to the hooks enabled in ``config``
            clock: Source of the current time, ``datetime.now`` by default
        """
        self.config = config or SchedulerConfig()
        self._hooks = hooks if hooks is not None else create_default_hook_registry(self.config)
        self._clock = clock or datetime.now
        self._jobs: dict[str, JobEntry] = {}
        self._lock = threading.RLock()
        self._started = False
        self._outstanding = 0
        self._drained = threading.Condition()

    @property
    def hooks(self) -> HookRegistry:
        return self._hooks

    @property
    def running(self) -> bool:
        return self._started

    @property
    def outstanding(self) -> int:
        """Number of armed jobs that have not finished yet."""
        with self._drained:
            return self._outstanding

    def schedule(self, name: str, job: Job | Callable[[], Any], when: RecurrenceSpec) -> JobEntry:
        """Schedule a job called ``name``. Names must be unique."""
        return self.schedule_with_options(name, job, JobOptions(recurrence=when))

    def schedule_with_options(
        self, name: str, job: Job | Callable[[], Any], options: JobOptions
    ) -> JobEntry:
        """Schedule a job with retry and recurrence options.

        Raises:
            DuplicateJobError: If ``name`` is already registered
            InvalidScheduleError: If the recurrence is missing or never fires

        After :meth:`start`, an error while arming the new job propagates and
        the job is not kept.
        """
        with self._lock:
            if name in self._jobs:
                raise DuplicateJobError(name)
            if options is None:
                raise InvalidScheduleError("No options provided")
            validate(options.recurrence, clock=self._clock)
            runnable = as_job(job)

            retry_count = options.retry_count
            if retry_count is None:
                retry_count = self.config.default_retry_count
            # The entry owns its anchor; callers may reuse the spec they passed in
            owned = dataclasses.replace(
                options, recurrence=dataclasses.replace(options.recurrence)
            )
            entry = JobEntry(
                name,
                runnable,
                owned,
                retry_count=retry_count,
                hooks=self._hooks,
                clock=self._clock,
                daemon=self.config.timer_daemon,
            )
            self._jobs[name] = entry
            logger.info(f"Scheduled job '{name}': {entry.recurrence}")
            if self._started:
                try:
                    self._arm(entry)
                except Exception:
                    del self._jobs[name]
                    raise
        return entry

    def cancel(self, name: str, wait: bool = False, timeout: float | None = None) -> bool:
        """Cancel the job called ``name``.

        A run already in progress is not interrupted; it completes and the
        job is not re-armed. With ``wait=True`` this blocks until that run
        has finished.

        Returns:
            False if no such job was registered
        """
        with self._lock:
            entry = self._jobs.pop(name, None)
            if entry is None:
                return False
            in_flight = entry.cancel()
        logger.info(f"Cancelled job '{name}'{' (run in progress)' if in_flight else ''}")

        if wait and in_flight and not entry.in_own_thread():
            entry.wait(timeout)
        return True

    def start(self, wait: bool = True) -> None:
        """Arm every registered job.

        With ``wait=True`` (the default) this blocks until no scheduled work
        remains: every one-shot job has run and every recurring job has been
        cancelled.

        Raises:
            SchedulerError: If the scheduler was already started
        """
        with self._lock:
            if self._started:
                raise SchedulerError("Scheduler already started")
            self._started = True
            entries = list(self._jobs.values())
            armed = 0
            for entry in entries:
                try:
                    self._arm(entry)
                except Exception as exc:
                    log_exception(logger, exc, f"Cannot arm job '{entry.name}', skipping it")
                    continue
                armed += 1
        logger.info(f"Scheduler started, {armed} of {len(entries)} job(s) armed")
        if wait:
            self.wait()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until all armed jobs are done. Returns False on timeout."""
        with self._drained:
            return self._drained.wait_for(lambda: self._outstanding <= 0, timeout)

    def shutdown(self, wait: bool = False) -> None:
        """Cancel every job. In-flight runs finish first when ``wait`` is set."""
        for name in self.job_names():
            self.cancel(name, wait=wait)
        logger.info("Scheduler shut down")

    def get_job(self, name: str) -> JobEntry | None:
        with self._lock:
            return self._jobs.get(name)

    def get_jobs(self) -> list[JobEntry]:
        with self._lock:
            return list(self._jobs.values())

    def job_names(self) -> list[str]:
        with self._lock:
            return list(self._jobs)

    def get_metrics(self, name: str | None = None) -> dict[str, Any]:
        """Run metrics collected by the MetricsHook, if one is registered."""
        hook = self._hooks.find(MetricsHook)
        if hook is None:
            return {}
        return hook.get_metrics(name)  # type: ignore[attr-defined]

    def _arm(self, entry: JobEntry) -> None:
        with self._drained:
            self._outstanding += 1
        try:
            entry.arm(on_done=self._job_done)
        except Exception:
            with self._drained:
                self._outstanding -= 1
                self._drained.notify_all()
            raise

    def _job_done(self, entry: JobEntry) -> None:
        with self._drained:
            self._outstanding -= 1
            self._drained.notify_all()
        logger.debug(f"Job '{entry.name}' done ({entry.run_count} run(s))")

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
