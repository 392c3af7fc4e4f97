"""The runnable contract and the callable adapter."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Job(Protocol):
    """A unit of work the scheduler can run.

    ``run()`` performs the effect and raises to report failure.
    """

    def run(self) -> Any: ...


class FunctionJob:
    """Runs a plain callable with fixed arguments."""

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        if not callable(func):
            raise TypeError(f"FunctionJob expects a callable, got {type(func).__name__}")
        self.func = func
        self.args = args
        self.kwargs = kwargs

    @property
    def name(self) -> str:
        return getattr(self.func, "__qualname__", repr(self.func))

    def run(self) -> Any:
        return self.func(*self.args, **self.kwargs)

    def __repr__(self) -> str:
        return f"FunctionJob({self.name})"


def as_job(obj: Job | Callable[..., Any]) -> Job:
    """Return ``obj`` if it already is a job, otherwise wrap it in FunctionJob."""
    if isinstance(obj, Job):
        return obj
    if callable(obj):
        return FunctionJob(obj)
    raise TypeError(f"Cannot schedule {type(obj).__name__}: expected a run() method or callable")
