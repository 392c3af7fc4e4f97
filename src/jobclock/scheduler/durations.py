"""Duration string parsing.

Accepts the compact notation used for ``each`` schedules: an optional sign
followed by one or more ``<number><unit>`` terms, e.g. ``"300ms"``,
``"2h3m"``, ``"1.5h"``. Valid units are ``ns``, ``us`` (or ``µs``), ``ms``,
``s``, ``m`` and ``h``. Sub-microsecond precision is truncated.
"""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from ..core.exceptions import MalformedDurationError

_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,  # U+00B5 micro sign
    "μs": 1_000,  # U+03BC Greek mu
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

# Longest units first so "ms" is not read as "m" followed by junk
_TERM = re.compile(r"(\d*\.?\d*)(ns|us|µs|μs|ms|h|m|s)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration string into a timedelta.

    Args:
        text: Duration string such as ``"2h3m"``

    Returns:
        The parsed duration (may be negative when prefixed with ``-``)

    Raises:
        MalformedDurationError: If the string is empty or not well formed
    """
    if not isinstance(text, str):
        raise MalformedDurationError(repr(text), "duration must be a string")

    raw = text.strip()
    if not raw:
        raise MalformedDurationError(text, "empty duration")

    sign = 1
    if raw[0] in "+-":
        sign = -1 if raw[0] == "-" else 1
        raw = raw[1:]
    if raw == "0":
        return timedelta(0)
    if not raw:
        raise MalformedDurationError(text)

    total_ns = Decimal(0)
    pos = 0
    while pos < len(raw):
        match = _TERM.match(raw, pos)
        if not match:
            raise MalformedDurationError(text, "unknown unit or stray characters")
        number, unit = match.groups()
        if not any(ch.isdigit() for ch in number):
            raise MalformedDurationError(text, "missing number before unit")
        try:
            total_ns += Decimal(number) * _NANOSECONDS[unit]
        except InvalidOperation as exc:
            raise MalformedDurationError(text) from exc
        pos = match.end()

    microseconds = int(total_ns // 1000)
    return timedelta(microseconds=sign * microseconds)


def is_valid_duration(text: str) -> bool:
    """Return True if the string parses as a duration."""
    try:
        parse_duration(text)
    except MalformedDurationError:
        return False
    return True


def format_duration(value: timedelta) -> str:
    """Render a timedelta in the compact notation accepted by parse_duration.

    Examples: ``"2h3m"``, ``"1m30s"``, ``"300ms"``, ``"0s"``.
    """
    total_us = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    if total_us == 0:
        return "0s"

    sign = "-" if total_us < 0 else ""
    total_us = abs(total_us)

    if total_us < 1_000:
        return f"{sign}{total_us}us"
    if total_us < 1_000_000:
        ms, us = divmod(total_us, 1_000)
        return f"{sign}{ms}ms" if not us else f"{sign}{total_us / 1_000:g}ms"

    hours, rest = divmod(total_us, 3_600 * 1_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if rest:
        seconds, frac = divmod(rest, 1_000_000)
        parts.append(f"{seconds}s" if not frac else f"{rest / 1_000_000:g}s")
    return sign + "".join(parts)


__all__ = ["format_duration", "is_valid_duration", "parse_duration"]
