"""Shared fixtures."""

from __future__ import annotations

from datetime import datetime

import pytest

from jobclock.scheduler import HookRegistry, MetricsHook, Scheduler


@pytest.fixture
def anchor() -> datetime:
    """Wednesday 2024-01-03 20:30."""
    return datetime(2024, 1, 3, 20, 30)


@pytest.fixture
def metrics_hook() -> MetricsHook:
    return MetricsHook()


@pytest.fixture
def scheduler(metrics_hook: MetricsHook):
    """A scheduler with only the metrics hook; cancels leftovers on teardown."""
    hooks = HookRegistry()
    hooks.register(metrics_hook)
    sched = Scheduler(hooks=hooks)
    yield sched
    sched.shutdown()
