"""Custom exceptions for the scheduler."""

from __future__ import annotations


class SchedulerError(Exception):
    """Base exception for scheduler errors."""

    pass


class DuplicateJobError(SchedulerError):
    """Raised when a job name is already registered."""

    def __init__(self, name: str) -> None:
        """Initialize the exception.

        Args:
            name: The job name that is already in use
        """
        self.name = name
        super().__init__(f"A job already exists with the name provided: {name!r}")


class InvalidScheduleError(SchedulerError):
    """Raised when a recurrence spec cannot produce a positive wait time."""

    def __init__(self, reason: str = "No valid recurrence provided") -> None:
        self.reason = reason
        super().__init__(reason)


class JobRunError(SchedulerError):
    """Raised when a single attempt of a job fails."""

    def __init__(
        self,
        message: str,
        job_name: str | None = None,
        attempt: int = 0,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            job_name: Name of the job whose attempt failed
            attempt: 1-based attempt number within the firing
            original_error: Original exception that caused the failure
        """
        self.job_name = job_name
        self.attempt = attempt
        self.original_error = original_error
        super().__init__(message)


class MalformedDurationError(ValueError):
    """Raised when a duration string such as "2h3m" cannot be parsed."""

    def __init__(self, text: str, detail: str = "invalid duration") -> None:
        self.text = text
        super().__init__(f"{detail}: {text!r}")


__all__ = [
    "DuplicateJobError",
    "InvalidScheduleError",
    "JobRunError",
    "MalformedDurationError",
    "SchedulerError",
]
