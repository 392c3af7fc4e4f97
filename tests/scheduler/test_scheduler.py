"""Tests for the scheduler module."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from jobclock.core.config import SchedulerConfig
from jobclock.core.exceptions import (
    DuplicateJobError,
    InvalidScheduleError,
    JobRunError,
    SchedulerError,
)
from jobclock.scheduler import scheduler as scheduler_module
from jobclock.scheduler import (
    HookRegistry,
    JobHook,
    JobOptions,
    JobState,
    MetricsHook,
    RecurrenceSpec,
    Scheduler,
    every,
)


class CounterJob:
    def __init__(self) -> None:
        self.count = 0
        self._lock = threading.Lock()

    def run(self) -> None:
        with self._lock:
            self.count += 1


class ErrorJob:
    """Fails until it has been called ``error_until`` times; 0 means always."""

    def __init__(self, error_until: int = 0) -> None:
        self.count = 0
        self.error_until = error_until

    def run(self) -> None:
        self.count += 1
        if self.error_until == 0 or self.count < self.error_until:
            raise RuntimeError("fake error")


class SlowJob:
    def __init__(self, seconds: float = 0.3) -> None:
        self.seconds = seconds
        self.count = 0
        self.started = threading.Event()
        self.finished = threading.Event()

    def run(self) -> None:
        self.count += 1
        self.started.set()
        time.sleep(self.seconds)
        self.finished.set()


def every_ms(ms: int) -> RecurrenceSpec:
    return RecurrenceSpec(every=every(ms).milliseconds)


class TestRegistration:
    def test_duplicate_name(self, scheduler):
        first = CounterJob()
        entry = scheduler.schedule("print", first, RecurrenceSpec(at="**:15"))
        with pytest.raises(DuplicateJobError):
            scheduler.schedule("print", CounterJob(), RecurrenceSpec(at="**:15"))
        assert scheduler.get_job("print") is entry
        assert entry.job is first

    def test_missing_recurrence(self, scheduler):
        with pytest.raises(InvalidScheduleError):
            scheduler.schedule("hi", None, None)  # type: ignore[arg-type]
        assert "hi" not in scheduler
        assert scheduler.cancel("hi") is False

    def test_empty_recurrence(self, scheduler):
        with pytest.raises(InvalidScheduleError):
            scheduler.schedule("hi", CounterJob(), RecurrenceSpec())
        assert len(scheduler) == 0

    def test_malformed_each(self, scheduler):
        with pytest.raises(InvalidScheduleError):
            scheduler.schedule("hi", CounterJob(), RecurrenceSpec(each="2hm"))

    def test_missing_options(self, scheduler):
        with pytest.raises(InvalidScheduleError):
            scheduler.schedule_with_options("hi", CounterJob(), None)  # type: ignore[arg-type]

    def test_not_a_job(self, scheduler):
        with pytest.raises(TypeError):
            scheduler.schedule("hi", 42, every_ms(100))  # type: ignore[arg-type]

    def test_plain_callable_is_accepted(self, scheduler):
        entry = scheduler.schedule("fn", lambda: None, every_ms(100))
        assert entry.state is JobState.DORMANT
        assert scheduler.job_names() == ["fn"]

    def test_recurring_flag(self, scheduler):
        assert scheduler.schedule("a", CounterJob(), every_ms(100)).recurring
        assert not scheduler.schedule("b", CounterJob(), RecurrenceSpec(each="1s")).recurring
        assert not scheduler.schedule("c", CounterJob(), RecurrenceSpec(on="sun")).recurring

    def test_default_retry_count(self):
        sched = Scheduler(SchedulerConfig(default_retry_count=4), hooks=HookRegistry())
        assert sched.schedule("a", CounterJob(), every_ms(100)).retry_count == 4
        entry = sched.schedule_with_options(
            "b", CounterJob(), JobOptions(recurrence=every_ms(100), retry_count=0)
        )
        assert entry.retry_count == 0

    def test_negative_retry_count_rejected(self):
        with pytest.raises(ValueError):
            JobOptions(recurrence=every_ms(100), retry_count=-1)

    def test_caller_spec_is_not_mutated(self, scheduler):
        spec = RecurrenceSpec(each="50ms")
        scheduler.schedule("once", CounterJob(), spec)
        scheduler.start(wait=False)
        assert scheduler.wait(timeout=2)
        assert spec.last_run is None
        assert scheduler.get_job("once").last_run is not None


class TestStart:
    def test_repeating_on_time(self, scheduler):
        job = CounterJob()
        scheduler.schedule("hi", job, every_ms(100))
        runner = threading.Thread(target=scheduler.start, daemon=True)
        runner.start()
        time.sleep(0.35)
        scheduler.cancel("hi")
        assert job.count >= 2
        runner.join(timeout=2)
        assert not runner.is_alive()

    def test_no_runs_before_start(self, scheduler):
        job1, job2 = CounterJob(), CounterJob()
        scheduler.schedule("hello", job1, every_ms(200))
        scheduler.schedule("hi", job2, every_ms(100))
        time.sleep(0.3)
        assert job1.count + job2.count == 0
        assert scheduler.get_job("hi").state is JobState.DORMANT

    def test_registered_after_start(self, scheduler):
        scheduler.start()  # nothing registered: returns at once
        job = CounterJob()
        entry = scheduler.schedule("hi", job, every_ms(100))
        assert entry.state is JobState.ARMED
        time.sleep(0.3)
        scheduler.cancel("hi")
        assert job.count > 0

    def test_start_blocks_until_one_shot_jobs_finish(self, scheduler):
        job = CounterJob()
        entry = scheduler.schedule("once", job, RecurrenceSpec(each="100ms"))
        runner = threading.Thread(target=scheduler.start, daemon=True)
        runner.start()
        runner.join(timeout=2)
        assert not runner.is_alive()
        assert job.count == 1
        assert entry.state is JobState.DONE

    def test_start_twice(self, scheduler):
        scheduler.start(wait=False)
        with pytest.raises(SchedulerError):
            scheduler.start(wait=False)

    def test_wait_times_out_while_recurring(self, scheduler):
        scheduler.schedule("hi", CounterJob(), every_ms(50))
        scheduler.start(wait=False)
        assert scheduler.outstanding == 1
        assert scheduler.wait(timeout=0.2) is False

    def test_last_run_in_the_past_catches_up(self, scheduler):
        fired: list[float] = []
        started = time.monotonic()
        spec = RecurrenceSpec(
            last_run=datetime.now() - timedelta(milliseconds=1000), each="300ms"
        )
        scheduler.schedule("catch-up", lambda: fired.append(time.monotonic()), spec)
        scheduler.start(wait=False)
        assert scheduler.wait(timeout=2)
        assert len(fired) == 1
        elapsed = fired[0] - started
        assert 0.1 < elapsed < 0.29

    def test_shutdown_releases_start(self, scheduler):
        scheduler.schedule("a", CounterJob(), every_ms(50))
        scheduler.schedule("b", CounterJob(), every_ms(70))
        runner = threading.Thread(target=scheduler.start, daemon=True)
        runner.start()
        time.sleep(0.1)
        scheduler.shutdown()
        runner.join(timeout=2)
        assert not runner.is_alive()
        assert len(scheduler) == 0


class TestCancel:
    def test_cancel_stops_future_runs(self, scheduler):
        job = CounterJob()
        entry = scheduler.schedule("hi", job, every_ms(100))
        scheduler.start(wait=False)
        time.sleep(0.15)
        assert scheduler.cancel("hi") is True
        count = job.count
        time.sleep(0.3)
        assert job.count == count
        assert count <= 2
        assert entry.state is JobState.DONE
        assert "hi" not in scheduler

    def test_cancel_dormant_job(self, scheduler):
        job = CounterJob()
        entry = scheduler.schedule("hi", job, every_ms(50))
        scheduler.cancel("hi")
        scheduler.start(wait=False)
        time.sleep(0.15)
        assert job.count == 0
        assert entry.state is JobState.DONE
        assert scheduler.wait(timeout=0.1)

    def test_cancel_unknown_is_noop(self, scheduler):
        assert scheduler.cancel("missing") is False

    def test_in_flight_run_completes(self, scheduler):
        job = SlowJob(0.3)
        entry = scheduler.schedule("slow", job, every_ms(50))
        scheduler.start(wait=False)
        assert job.started.wait(timeout=1)

        before = time.monotonic()
        scheduler.cancel("slow")
        assert time.monotonic() - before < 0.2
        assert not job.finished.is_set()

        assert job.finished.wait(timeout=1)
        assert entry.wait(timeout=1)
        time.sleep(0.15)
        assert job.count == 1
        assert entry.state is JobState.DONE
        assert scheduler.wait(timeout=0.5)

    def test_cancel_wait_blocks_for_in_flight_run(self, scheduler):
        job = SlowJob(0.2)
        scheduler.schedule("slow", job, every_ms(50))
        scheduler.start(wait=False)
        assert job.started.wait(timeout=1)
        scheduler.cancel("slow", wait=True)
        assert job.finished.is_set()

    def test_job_can_cancel_itself(self, scheduler):
        calls = []

        def self_cancelling() -> None:
            calls.append(1)
            scheduler.cancel("me", wait=True)

        scheduler.schedule("me", self_cancelling, every_ms(50))
        scheduler.start(wait=False)
        assert scheduler.wait(timeout=1)
        time.sleep(0.15)
        assert calls == [1]


class TestRetry:
    def test_retry_until_success(self, scheduler):
        job = ErrorJob(error_until=2)
        scheduler.schedule_with_options(
            "hi", job, JobOptions(recurrence=RecurrenceSpec(each="50ms"), retry_count=2)
        )
        scheduler.start(wait=False)
        assert scheduler.wait(timeout=2)
        assert job.count == 2

    @pytest.mark.parametrize("retry_count", [0, 1, 3])
    def test_retry_bound(self, scheduler, metrics_hook, retry_count):
        job = ErrorJob()
        scheduler.schedule_with_options(
            "fail",
            job,
            JobOptions(recurrence=RecurrenceSpec(each="30ms"), retry_count=retry_count),
        )
        scheduler.start(wait=False)
        assert scheduler.wait(timeout=2)
        assert job.count == retry_count + 1
        metrics = metrics_hook.get_metrics("fail")
        assert metrics["run_count"] == 1
        assert metrics["failure_count"] == 1
        assert metrics["attempt_count"] == retry_count + 1

    def test_failing_recurring_job_keeps_running(self, scheduler):
        job = ErrorJob()
        scheduler.schedule_with_options(
            "fail", job, JobOptions(recurrence=every_ms(50), retry_count=1)
        )
        scheduler.start(wait=False)
        time.sleep(0.3)
        scheduler.cancel("fail")
        time.sleep(0.1)
        # every firing makes both attempts before re-arming
        assert job.count >= 4
        assert job.count % 2 == 0

    def test_job_errors_carry_name_and_attempt(self):
        class Outcome(JobHook):
            def before_run(self, context):
                return True

            def after_run(self, context, result):
                self.result = result

        def broken():
            raise JobRunError("exit status 2")

        hook = Outcome()
        hooks = HookRegistry()
        hooks.register(hook)
        sched = Scheduler(hooks=hooks)
        sched.schedule_with_options(
            "broken", broken, JobOptions(recurrence=RecurrenceSpec(each="30ms"), retry_count=2)
        )
        sched.start(wait=False)
        assert sched.wait(timeout=2)
        error = hook.result.error
        assert isinstance(error, JobRunError)
        assert error.job_name == "broken"
        assert error.attempt == 3


class TestTimezoneAwareAnchor:
    def test_recurring_job_runs(self, scheduler):
        job = CounterJob()
        spec = RecurrenceSpec(
            last_run=datetime.now(timezone.utc) - timedelta(seconds=1),
            every=every(100).milliseconds,
        )
        entry = scheduler.schedule("tz", job, spec)
        scheduler.start(wait=False)
        time.sleep(0.35)
        scheduler.cancel("tz")
        assert job.count >= 2
        assert entry.last_run.tzinfo is not None

    def test_one_shot_drains(self, scheduler):
        job = CounterJob()
        zone = timezone(timedelta(hours=-5))
        spec = RecurrenceSpec(last_run=datetime.now(zone), each="50ms")
        entry = scheduler.schedule("tz", job, spec)
        scheduler.start(wait=False)
        assert scheduler.wait(timeout=2)
        assert job.count == 1
        assert entry.last_run.utcoffset() == timedelta(hours=-5)

    def test_registered_after_start(self, scheduler):
        scheduler.start(wait=False)
        job = CounterJob()
        spec = RecurrenceSpec(last_run=datetime.now(timezone.utc), each="50ms")
        scheduler.schedule("tz", job, spec)
        assert scheduler.wait(timeout=2)
        assert job.count == 1


class TestArmFailures:
    @pytest.fixture(autouse=True)
    def broken_resolver(self, monkeypatch):
        real_next_run = scheduler_module.next_run

        def next_run(spec, anchor, now=None):
            if spec.each == "40ms":
                raise RuntimeError("resolver failure")
            return real_next_run(spec, anchor, now=now)

        monkeypatch.setattr(scheduler_module, "next_run", next_run)

    def test_start_skips_failing_job(self, scheduler):
        bad = scheduler.schedule("bad", CounterJob(), RecurrenceSpec(each="40ms"))
        good_job = CounterJob()
        good = scheduler.schedule("good", good_job, RecurrenceSpec(each="50ms"))

        scheduler.start(wait=False)
        assert scheduler.wait(timeout=2)
        assert scheduler.outstanding == 0
        assert good_job.count == 1
        assert good.state is JobState.DONE
        assert bad.state is JobState.DORMANT

    def test_blocking_start_returns(self, scheduler):
        scheduler.schedule("bad", CounterJob(), RecurrenceSpec(each="40ms"))
        scheduler.schedule("good", CounterJob(), RecurrenceSpec(each="50ms"))
        runner = threading.Thread(target=scheduler.start, daemon=True)
        runner.start()
        runner.join(timeout=2)
        assert not runner.is_alive()

    def test_schedule_after_start_is_rolled_back(self, scheduler):
        scheduler.start(wait=False)
        with pytest.raises(RuntimeError, match="resolver failure"):
            scheduler.schedule("bad", CounterJob(), RecurrenceSpec(each="40ms"))
        assert "bad" not in scheduler
        assert scheduler.outstanding == 0
        assert scheduler.wait(timeout=0.1)


class TestHooksIntegration:
    def test_skip_firing(self):
        class SkipAll(JobHook):
            def before_run(self, context):
                return False

            def after_run(self, context, result):
                self.skipped = result.skipped

        hook = SkipAll()
        hooks = HookRegistry()
        hooks.register(hook)
        sched = Scheduler(hooks=hooks)
        job = CounterJob()
        sched.schedule("once", job, RecurrenceSpec(each="30ms"))
        sched.start(wait=False)
        assert sched.wait(timeout=2)
        assert job.count == 0
        assert hook.skipped is True

    def test_metrics_available_through_scheduler(self, scheduler):
        scheduler.schedule("once", CounterJob(), RecurrenceSpec(each="30ms"))
        scheduler.start(wait=False)
        assert scheduler.wait(timeout=2)
        metrics = scheduler.get_metrics("once")
        assert metrics["success_count"] == 1
        assert metrics["success_rate"] == 100.0

    def test_no_metrics_hook(self):
        sched = Scheduler(hooks=HookRegistry())
        assert sched.get_metrics() == {}

    def test_default_hooks_follow_config(self):
        sched = Scheduler(SchedulerConfig(logging_hook_enabled=False))
        hooks = sched.hooks.get_hooks()
        assert len(hooks) == 1
        assert isinstance(hooks[0], MetricsHook)


def test_entry_to_dict(scheduler):
    entry = scheduler.schedule("hi", CounterJob(), every_ms(100))
    data = entry.to_dict()
    assert data["name"] == "hi"
    assert data["state"] == "dormant"
    assert data["recurring"] is True
    assert data["recurrence"] == "every 100 milliseconds"
    assert data["next_run_time"] is None
