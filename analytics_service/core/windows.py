"""
Time-window resolution.

Maps a symbolic window to concrete UTC bounds relative to a reference time.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union


class TimeWindow(Enum):
    """Symbolic relative time ranges accepted by ListLogs.

    Values match the wire enum numbers.
    """
    UNSPECIFIED = 0
    TODAY = 1
    YESTERDAY = 2
    LAST_WEEK = 3
    LAST_MONTH = 4
    LAST_THREE_MONTHS = 5

    @classmethod
    def parse(cls, value: Union["TimeWindow", str, int, None]) -> "TimeWindow":
        """Parse a window from its enum, name or wire number.

        None and the empty string mean UNSPECIFIED.

        Raises:
            ValueError: If the value names no known window
        """
        if value is None or value == "":
            return cls.UNSPECIFIED
        if isinstance(value, cls):
            return value
        # bool is an int subclass but never a valid window
        if isinstance(value, bool):
            raise ValueError(f"Unknown time window: {value!r}")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise ValueError(f"Unknown time window: {value!r}")
        if isinstance(value, str):
            name = value.strip().upper().replace("-", "_")
            if name in cls.__members__:
                return cls[name]
            if name.isdigit():
                return cls.parse(int(name))
        valid_windows = [window.name.lower() for window in cls]
        raise ValueError(f"Unknown time window: {value!r}, must be one of: {valid_windows}")


@dataclass(frozen=True)
class TimeBounds:
    """Half-open creation-time interval: lower <= created_at < upper.

    Either side may be None, meaning unbounded on that side.
    """
    lower: Optional[datetime] = None
    upper: Optional[datetime] = None

    def __post_init__(self):
        """Validate bounds are ordered."""
        if self.lower is not None and self.upper is not None and self.lower > self.upper:
            raise ValueError("lower bound must not be after upper bound")

    @property
    def is_unbounded(self) -> bool:
        return self.lower is None and self.upper is None

    def contains(self, moment: datetime) -> bool:
        """Check whether a timestamp falls inside the interval."""
        if self.lower is not None and moment < self.lower:
            return False
        if self.upper is not None and moment >= self.upper:
            return False
        return True


def utc_now() -> datetime:
    """Current application time in UTC."""
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def subtract_months(moment: datetime, months: int) -> datetime:
    """Step back a number of calendar months.

    The day of month is clamped to the length of the target month, so
    31 March minus one month is 28 (or 29) February.
    """
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def resolve_window(window: TimeWindow, now: Optional[datetime] = None) -> TimeBounds:
    """Resolve a symbolic window to absolute UTC bounds.

    All bounds come from the application clock in UTC, regardless of which
    storage backend will evaluate them. Day boundaries are UTC midnights.

    Args:
        window: Symbolic window to resolve
        now: Reference time (defaults to the current UTC time); a naive
            value is taken to be UTC

    Returns:
        TimeBounds for the window; unbounded for UNSPECIFIED
    """
    now = _as_utc(now) if now is not None else utc_now()

    if window is TimeWindow.UNSPECIFIED:
        return TimeBounds()
    if window is TimeWindow.TODAY:
        return TimeBounds(lower=_start_of_day(now))
    if window is TimeWindow.YESTERDAY:
        today = _start_of_day(now)
        return TimeBounds(lower=today - timedelta(days=1), upper=today)
    if window is TimeWindow.LAST_WEEK:
        return TimeBounds(lower=now - timedelta(days=7))
    if window is TimeWindow.LAST_MONTH:
        return TimeBounds(lower=subtract_months(now, 1))
    if window is TimeWindow.LAST_THREE_MONTHS:
        return TimeBounds(lower=subtract_months(now, 3))

    raise ValueError(f"Unsupported time window: {window!r}")
