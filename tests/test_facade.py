"""Tests for the module level scheduler shortcuts."""

from __future__ import annotations

import threading

import pytest

import jobclock
from jobclock import facade
from jobclock.core.exceptions import DuplicateJobError
from jobclock.scheduler import HookRegistry, JobOptions, RecurrenceSpec, Scheduler


@pytest.fixture(autouse=True)
def fresh_default():
    facade.set_default_scheduler(Scheduler(hooks=HookRegistry()))
    yield
    facade.get_default_scheduler().shutdown()
    facade.set_default_scheduler(None)


def test_default_is_shared():
    assert facade.get_default_scheduler() is facade.get_default_scheduler()


def test_reset_creates_new_scheduler():
    first = facade.get_default_scheduler()
    facade.set_default_scheduler(None)
    assert facade.get_default_scheduler() is not first


def test_schedule_and_run():
    done = threading.Event()
    jobclock.schedule("once", done.set, RecurrenceSpec(each="50ms"))
    jobclock.start(wait=False)
    assert done.wait(timeout=2)
    assert facade.get_default_scheduler().wait(timeout=1)


def test_schedule_with_options_uses_retry():
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise RuntimeError("not yet")

    jobclock.schedule_with_options(
        "flaky", flaky, JobOptions(recurrence=RecurrenceSpec(each="30ms"), retry_count=5)
    )
    jobclock.start()
    assert len(attempts) == 3


def test_names_are_unique_on_default():
    jobclock.schedule("dup", lambda: None, RecurrenceSpec(each="1h"))
    with pytest.raises(DuplicateJobError):
        jobclock.schedule("dup", lambda: None, RecurrenceSpec(each="1h"))


def test_cancel_and_shutdown():
    jobclock.schedule("a", lambda: None, RecurrenceSpec(each="1h"))
    jobclock.schedule("b", lambda: None, RecurrenceSpec(each="1h"))
    assert jobclock.cancel("a") is True
    assert jobclock.cancel("a") is False
    jobclock.shutdown()
    assert len(facade.get_default_scheduler()) == 0
