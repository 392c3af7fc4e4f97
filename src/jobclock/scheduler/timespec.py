"""Recurrence specifications and next-run resolution.

A :class:`RecurrenceSpec` describes when a job repeats. It is resolved
against an anchor instant (the job's last run) into a concrete wait time.

Examples:
    ```python
    RecurrenceSpec(every=every(1).seconds)                 # every second
    RecurrenceSpec(every=every(2).hours, at="**:10")        # every 2 hours at minute 10
    RecurrenceSpec(every=every(1).hours, at="**:*5")        # every hour, next minute ending in 5
    RecurrenceSpec(every=every(2).weeks, on="sun", at="12:12")  # every 2 weeks on Sunday
    RecurrenceSpec(each="2h3m")                             # once, 2 hours 3 minutes from now
    RecurrenceSpec(on="fri", at="18:00")                    # once, next Friday at 18:00
    ```

Only specs built with ``every`` repeat forever; ``each`` and day/clock-time
specs describe a single future run.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, NamedTuple

from ..core.exceptions import InvalidScheduleError, MalformedDurationError
from ..core.logger import get_logger
from .durations import format_duration, parse_duration

logger = get_logger("scheduler.timespec")

ZERO = timedelta(0)

_CLOCK_PATTERN = re.compile(r"^([0-9*]{2}):([0-9*][0-9])$")


class TimeUnit(str, Enum):
    MILLISECOND = "millisecond"
    SECOND = "second"
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"

    @property
    def length(self) -> timedelta:
        return _UNIT_LENGTHS[self]

    @classmethod
    def parse(cls, value: TimeUnit | str) -> TimeUnit:
        """Accept enum members, singular/plural names and short aliases."""
        if isinstance(value, TimeUnit):
            return value
        key = str(value).strip().lower()
        unit = _UNIT_ALIASES.get(key) or _UNIT_ALIASES.get(key.rstrip("s"))
        if unit is None:
            raise ValueError(f"Unknown time unit: {value!r}")
        return unit


_UNIT_LENGTHS = {
    TimeUnit.MILLISECOND: timedelta(milliseconds=1),
    TimeUnit.SECOND: timedelta(seconds=1),
    TimeUnit.MINUTE: timedelta(minutes=1),
    TimeUnit.HOUR: timedelta(hours=1),
    TimeUnit.DAY: timedelta(days=1),
    TimeUnit.WEEK: timedelta(weeks=1),
}

_UNIT_ALIASES = {
    "ms": TimeUnit.MILLISECOND,
    "millisecond": TimeUnit.MILLISECOND,
    "s": TimeUnit.SECOND,
    "sec": TimeUnit.SECOND,
    "second": TimeUnit.SECOND,
    "m": TimeUnit.MINUTE,
    "min": TimeUnit.MINUTE,
    "minute": TimeUnit.MINUTE,
    "h": TimeUnit.HOUR,
    "hour": TimeUnit.HOUR,
    "d": TimeUnit.DAY,
    "day": TimeUnit.DAY,
    "w": TimeUnit.WEEK,
    "week": TimeUnit.WEEK,
}

# Units whose interval never depends on the anchor when no alignment is set
_FIXED_UNITS = {TimeUnit.MILLISECOND, TimeUnit.SECOND, TimeUnit.MINUTE}


class DayOfWeek(str, Enum):
    MONDAY = "mon"
    TUESDAY = "tue"
    WEDNESDAY = "wed"
    THURSDAY = "thu"
    FRIDAY = "fri"
    SATURDAY = "sat"
    SUNDAY = "sun"

    @property
    def index(self) -> int:
        """Position of the day as returned by ``datetime.weekday()``."""
        return _WEEKDAY_ORDER.index(self)

    @classmethod
    def parse(cls, value: DayOfWeek | str | int) -> DayOfWeek:
        if isinstance(value, DayOfWeek):
            return value
        if isinstance(value, int):
            return _WEEKDAY_ORDER[value % 7]
        key = str(value).strip().lower()[:3]
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown day of week: {value!r}") from None


_WEEKDAY_ORDER = list(DayOfWeek)


@dataclass(frozen=True)
class Every:
    """A repeat interval of ``count`` units. Counts below 1 become 1."""

    unit: TimeUnit = TimeUnit.SECOND
    count: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "unit", TimeUnit.parse(self.unit))
        if self.count < 1:
            object.__setattr__(self, "count", 1)

    @property
    def interval(self) -> timedelta:
        return self.unit.length * self.count

    def __str__(self) -> str:
        name = self.unit.value if self.count == 1 else f"{self.unit.value}s"
        return f"every {self.count} {name}"


def every(value: int) -> _IntervalChain:
    """Start building a repeat interval, e.g. ``every(5).minutes``."""
    return _IntervalChain(value)


class _IntervalChain:
    def __init__(self, value: int) -> None:
        self._value = value

    @property
    def milliseconds(self) -> Every:
        return Every(TimeUnit.MILLISECOND, self._value)

    @property
    def seconds(self) -> Every:
        return Every(TimeUnit.SECOND, self._value)

    @property
    def minutes(self) -> Every:
        return Every(TimeUnit.MINUTE, self._value)

    @property
    def hours(self) -> Every:
        return Every(TimeUnit.HOUR, self._value)

    @property
    def days(self) -> Every:
        return Every(TimeUnit.DAY, self._value)

    @property
    def weeks(self) -> Every:
        return Every(TimeUnit.WEEK, self._value)


class ClockTime(NamedTuple):
    """A parsed ``HH:MM`` pattern. ``None`` marks a wildcard position."""

    hour: int | None
    minute_tens: int | None
    minute_units: int

    @property
    def minute(self) -> int | None:
        if self.minute_tens is None:
            return None
        return self.minute_tens * 10 + self.minute_units


def parse_clock_time(pattern: str) -> ClockTime:
    """Parse an ``HH:MM`` clock pattern where digits may be ``*``.

    Any ``*`` in the hour pair makes the hour a wildcard. In the minute pair
    only the tens digit may be a wildcard (``"**:*5"``).

    Raises:
        ValueError: If the pattern is malformed or out of range
    """
    match = _CLOCK_PATTERN.match(pattern.strip())
    if not match:
        raise ValueError(f"Invalid clock time pattern: {pattern!r} (expected HH:MM)")
    hour_part, minute_part = match.groups()

    hour: int | None = None
    if "*" not in hour_part:
        hour = int(hour_part)
        if hour > 23:
            raise ValueError(f"Hour out of range in {pattern!r}")

    tens: int | None = None
    if minute_part[0] != "*":
        tens = int(minute_part[0])
        if tens > 5:
            raise ValueError(f"Minute out of range in {pattern!r}")
    return ClockTime(hour, tens, int(minute_part[1]))


def _clock_delta(anchor: datetime, clock: ClockTime | None, use_hour: bool = True) -> timedelta:
    """Distance from ``anchor`` to the next instant matching ``clock``.

    Always non-negative; zero when the anchor already matches.
    """
    if clock is None:
        return ZERO

    hour = clock.hour if use_hour else None
    if clock.minute_tens is None:
        # Next minute ending in minute_units, within the anchor's 10-minute band
        minutes = (clock.minute_units - anchor.minute % 10) % 10
        if hour is not None:
            minutes += ((hour - anchor.hour) % 24) * 60
        return timedelta(minutes=minutes)

    if hour is None:
        return timedelta(minutes=(clock.minute - anchor.minute) % 60)

    target = hour * 60 + clock.minute
    current = anchor.hour * 60 + anchor.minute
    return timedelta(minutes=(target - current) % (24 * 60))


def _weekday_delta(anchor: datetime, on: DayOfWeek | None) -> timedelta:
    if on is None:
        return ZERO
    return timedelta(days=(on.index - anchor.weekday()) % 7)


def _match_cycle(on: DayOfWeek | None, clock: ClockTime | None) -> timedelta:
    """Length of one full matching cycle of a day/clock-time pattern."""
    if clock is None or (on is not None and clock.hour is not None):
        return timedelta(weeks=1)
    if clock.hour is not None:
        return timedelta(days=1)
    if clock.minute_tens is not None:
        return timedelta(hours=1)
    return timedelta(minutes=10)


def _next_day_and_clock_match(
    anchor: datetime, on: DayOfWeek | None, clock: ClockTime | None
) -> timedelta:
    target = anchor + _clock_delta(anchor, clock)
    if on is not None:
        # Keep the matched time of day, move forward to the requested weekday
        target += timedelta(days=(on.index - target.weekday()) % 7)
    delta = target - anchor
    if delta == ZERO and (on is not None or clock is not None):
        # The anchor itself matches; the next occurrence is one cycle away
        delta = _match_cycle(on, clock)
        if on is not None and (anchor + delta).weekday() != on.index:
            # A wildcard-hour cycle ran past midnight into another weekday
            delta += _next_day_and_clock_match(anchor + delta, on, clock)
    return delta


def _safe_clock(at: str | None) -> ClockTime | None:
    if not at:
        return None
    try:
        return parse_clock_time(at)
    except ValueError:
        return None


@dataclass
class RecurrenceSpec:
    """Describes how often, and at which wall-clock alignment, a job runs.

    Attributes:
        last_run: Anchor the next occurrence is computed from. ``None`` means
            "now" at arm time.
        each: Free-form duration string (``"2h3m"``). Overrides every other
            field when set.
        every: Repeat interval. Only specs with ``every`` are recurring.
        on: Weekday constraint, used by week intervals and one-shot specs.
        at: ``HH:MM`` clock pattern, digits may be ``*``.
    """

    last_run: datetime | None = None
    each: str | None = None
    every: Every | None = None
    on: DayOfWeek | None = None
    at: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.every, _IntervalChain):
            self.every = self.every.seconds
        if self.on is not None:
            self.on = DayOfWeek.parse(self.on)
        if self.each is not None and not self.each.strip():
            self.each = None
        if self.at is not None and not self.at.strip():
            self.at = None

    @property
    def is_recurring(self) -> bool:
        return self.every is not None

    @property
    def is_empty(self) -> bool:
        return self.each is None and self.every is None and self.on is None and self.at is None

    def duration(self, anchor: datetime) -> timedelta:
        return duration(self, anchor)

    def next(self, anchor: datetime | None = None, now: datetime | None = None) -> timedelta:
        """Wait time from ``now`` until the next occurrence after ``anchor``."""
        if anchor is None:
            anchor = self.last_run or _now_like(None)
        return next_run(self, anchor, now=now)

    def describe(self) -> str:
        if self.each:
            return f"each {self.each}"
        parts = [str(self.every)] if self.every else ["once"]
        if self.on:
            parts.append(f"on {self.on.name.title()}")
        if self.at:
            parts.append(f"at {self.at}")
        return " ".join(parts)

    def __str__(self) -> str:
        return self.describe()


@dataclass
class JobOptions:
    """Options for a scheduled job.

    ``retry_count`` is the number of additional attempts after a failed one;
    ``None`` falls back to the scheduler default. ``timeout`` is reserved and
    not enforced.
    """

    recurrence: RecurrenceSpec | None = None
    retry_count: int | None = None
    timeout: timedelta | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.retry_count is not None and self.retry_count < 0:
            raise ValueError("retry_count must be zero or positive")


def duration(spec: RecurrenceSpec, anchor: datetime) -> timedelta:
    """Raw interval implied by ``spec`` as of ``anchor``.

    Does not account for the anchor being in the past. A malformed ``each``
    resolves to zero.
    """
    if spec.each:
        try:
            return parse_duration(spec.each)
        except MalformedDurationError:
            return ZERO

    clock = _safe_clock(spec.at)
    if spec.every is None:
        return _next_day_and_clock_match(anchor, spec.on, clock)

    unit = spec.every.unit
    base = spec.every.interval
    if unit in _FIXED_UNITS:
        return base
    if unit is TimeUnit.HOUR:
        # Only the minute part of the pattern applies to hourly schedules
        return base + _clock_delta(anchor, clock, use_hour=False)
    if unit is TimeUnit.DAY:
        return base + _clock_delta(anchor, clock)
    if unit is TimeUnit.WEEK:
        return _weekday_delta(anchor, spec.on) + base + _clock_delta(anchor, clock)
    return ZERO


def _is_fixed(spec: RecurrenceSpec) -> bool:
    """True when every step of the spec has the same length."""
    if spec.each:
        return True
    if spec.every is None:
        return False
    if spec.every.unit in _FIXED_UNITS:
        return True
    if spec.every.unit is TimeUnit.WEEK and spec.on is not None:
        return False
    return not spec.at


def align_to(instant: datetime, reference: datetime | None) -> datetime:
    """Express ``instant`` the way ``reference`` is: aware in its zone, or naive local.

    Naive datetimes are read as local time.
    """
    if reference is None:
        return instant
    if reference.tzinfo is not None and instant.tzinfo is None:
        return instant.astimezone(reference.tzinfo)
    if reference.tzinfo is None and instant.tzinfo is not None:
        return instant.astimezone().replace(tzinfo=None)
    return instant


def _now_like(anchor: datetime | None) -> datetime:
    if anchor is not None and anchor.tzinfo is not None:
        return datetime.now(anchor.tzinfo)
    return datetime.now()


def next_run(spec: RecurrenceSpec, anchor: datetime, now: datetime | None = None) -> timedelta:
    """Wait time from ``now`` until the next occurrence of ``spec``.

    Occurrences that already elapsed are skipped: each is treated as a run
    that happened, and the next one is resolved from it, until the resulting
    instant is strictly after ``now``. The result is strictly positive, or
    zero when the spec cannot make progress.
    """
    now = _now_like(anchor) if now is None else align_to(now, anchor)

    step = duration(spec, anchor)
    if step <= ZERO:
        return ZERO
    interval = step

    if anchor + interval <= now and _is_fixed(spec):
        interval += step * ((now - anchor - interval) // step)

    while anchor + interval <= now:
        step = duration(spec, anchor + interval)
        if step <= ZERO:
            logger.debug(f"Recurrence {spec} stopped making progress at {anchor + interval}")
            return ZERO
        interval += step

    return anchor + interval - now


def next_fire_time(
    spec: RecurrenceSpec, anchor: datetime | None = None, now: datetime | None = None
) -> datetime | None:
    """Absolute instant of the next occurrence, or None for an invalid spec."""
    now = now or _now_like(anchor)
    wait = next_run(spec, anchor or now, now=now)
    if wait <= ZERO:
        return None
    return now + wait


def upcoming(
    spec: RecurrenceSpec,
    count: int = 5,
    start: datetime | None = None,
) -> list[datetime]:
    """The next ``count`` fire times, assuming each run completes instantly."""
    anchor = start or spec.last_run or _now_like(None)
    now = start or _now_like(anchor)
    times: list[datetime] = []
    while len(times) < count:
        wait = next_run(spec, anchor, now=now)
        if wait <= ZERO:
            break
        fire = now + wait
        times.append(fire)
        if not spec.is_recurring:
            break
        anchor = now = fire
    return times


def validate(spec: RecurrenceSpec | None, clock: Callable[[], datetime] | None = None) -> None:
    """Check that ``spec`` can produce a positive wait time.

    Raises:
        InvalidScheduleError: With a human readable reason
    """
    if spec is None:
        raise InvalidScheduleError("No recurrence provided")
    if not isinstance(spec, RecurrenceSpec):
        raise InvalidScheduleError(f"Expected RecurrenceSpec, got {type(spec).__name__}")
    if spec.is_empty:
        raise InvalidScheduleError("Recurrence is empty: set each, every, on or at")

    if spec.each:
        try:
            value = parse_duration(spec.each)
        except MalformedDurationError as exc:
            raise InvalidScheduleError(f"Invalid each duration: {exc}") from exc
        if value <= ZERO:
            raise InvalidScheduleError(
                f"each must be a positive duration, got {format_duration(value)}"
            )
        return

    if spec.at:
        try:
            parse_clock_time(spec.at)
        except ValueError as exc:
            raise InvalidScheduleError(str(exc)) from exc

    now = clock() if clock else _now_like(spec.last_run)
    if duration(spec, now) <= ZERO:
        raise InvalidScheduleError(f"Recurrence {spec} resolves to a zero duration")


__all__ = [
    "ClockTime",
    "DayOfWeek",
    "align_to",
    "Every",
    "JobOptions",
    "RecurrenceSpec",
    "TimeUnit",
    "duration",
    "every",
    "next_fire_time",
    "next_run",
    "parse_clock_time",
    "upcoming",
    "validate",
]
