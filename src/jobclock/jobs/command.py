"""Job that spawns an external process."""

from __future__ import annotations

import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence

from ..core.exceptions import JobRunError
from ..core.logger import get_logger

logger = get_logger("jobs.command")

_OUTPUT_TAIL = 500


class CommandJob:
    """Runs a command and fails when it exits non-zero.

    Example:
        ```python
        scheduler.schedule(
            "echo",
            CommandJob(["echo", "Hello world"]),
            RecurrenceSpec(every=every(1).seconds),
        )
        ```
    """

    def __init__(
        self,
        args: Sequence[str],
        cwd: str | os.PathLike[str] | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        capture_output: bool = True,
    ) -> None:
        if isinstance(args, str):
            raise TypeError("args must be a sequence; use CommandJob.from_string for a string")
        if not args:
            raise ValueError("CommandJob needs at least the program to run")
        self.args = list(args)
        self.cwd = cwd
        self.env = dict(env) if env else None
        self.timeout = timeout
        self.capture_output = capture_output
        self.last_result: subprocess.CompletedProcess[str] | None = None

    @classmethod
    def from_string(cls, command: str, **kwargs) -> CommandJob:
        """Build a job from a shell-like command line (no shell is involved)."""
        return cls(shlex.split(command), **kwargs)

    @property
    def command_line(self) -> str:
        return shlex.join(self.args)

    def run(self) -> subprocess.CompletedProcess[str]:
        env = {**os.environ, **self.env} if self.env else None
        logger.debug(f"Running command: {self.command_line}")
        try:
            result = subprocess.run(
                self.args,
                cwd=self.cwd,
                env=env,
                timeout=self.timeout,
                capture_output=self.capture_output,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()[-_OUTPUT_TAIL:]
            message = f"Command exited with status {exc.returncode}: {self.command_line}"
            if stderr:
                message = f"{message}\n{stderr}"
            raise JobRunError(message, original_error=exc) from exc
        except subprocess.TimeoutExpired as exc:
            raise JobRunError(
                f"Command timed out after {self.timeout}s: {self.command_line}",
                original_error=exc,
            ) from exc
        except OSError as exc:
            raise JobRunError(
                f"Command could not be started: {self.command_line}: {exc}",
                original_error=exc,
            ) from exc

        self.last_result = result
        return result

    def __repr__(self) -> str:
        return f"CommandJob({self.command_line!r})"
