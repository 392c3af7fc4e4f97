"""Logging setup for jobclock.

All jobclock loggers live under the ``jobclock`` namespace and inherit their
level from it. :func:`setup_logging` installs a Rich console handler and, when
a log file is configured, a size-rotated file handler on the root logger.
Calling it again replaces the handlers it installed before; handlers added by
the host application are left alone.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .config import LoggingConfig

LOGGER_NAMESPACE = "jobclock"

console = Console(stderr=True)

_installed: list[logging.Handler] = []


def _console_handler(config: LoggingConfig) -> logging.Handler:
    return RichHandler(
        console=console,
        show_time=True,
        show_path=config.show_path,
        markup=False,
        rich_tracebacks=True,
    )


def _file_handler(config: LoggingConfig) -> logging.Handler:
    path = Path(config.log_file)  # type: ignore[arg-type]
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
        delay=True,
    )
    handler.setFormatter(logging.Formatter(config.format))
    return handler


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure console and file logging for the whole process.

    Args:
        config: Logging settings; defaults to ``LoggingConfig()``
    """
    config = config or LoggingConfig()
    level = logging.getLevelName(config.level)

    root = logging.getLogger()
    while _installed:
        old = _installed.pop()
        root.removeHandler(old)
        old.close()

    handlers = [_console_handler(config)]
    if config.log_file:
        handlers.append(_file_handler(config))
    for handler in handlers:
        handler.setLevel(level)
        root.addHandler(handler)
        _installed.append(handler)

    root.setLevel(level)
    logging.getLogger(LOGGER_NAMESPACE).setLevel(level)
    get_logger("setup").debug(
        f"Logging configured: level={config.level}, file={config.log_file or '-'}"
    )


def get_logger(name: str) -> logging.Logger:
    """Return the ``jobclock.<name>`` logger."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def is_configured() -> bool:
    """True once :func:`setup_logging` has installed its handlers."""
    return bool(_installed)


def log_exception(logger: logging.Logger, exc: BaseException, context: str = "") -> None:
    """Log ``exc`` with its traceback at ERROR level, prefixed by ``context``."""
    message = f"{context}: {exc}" if context else f"Unexpected error: {exc}"
    logger.error(message, exc_info=exc)
