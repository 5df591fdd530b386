"""Business-hours arithmetic over a single configured weekly calendar.

All instants are handled as timezone-aware UTC datetimes; naive values are
assumed to already be UTC. Day boundaries and opening hours are interpreted in
the calendar's own time zone, so a window such as 08:00-18:00 follows local
wall-clock time across DST changes.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Iterable, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sla_engine.core.exceptions import InvalidConfigurationError, InvariantViolationError

# Ten years of calendar days; add_business_time gives up after this many.
MAX_DAY_SCAN = 3660

_ZERO = dt.timedelta(0)
_ONE_DAY = dt.timedelta(days=1)


def as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def to_hours(value: dt.timedelta) -> float:
    return value.total_seconds() / 3600


def parse_clock(raw: str, *, setting: str | None = None) -> dt.time:
    text = str(raw or "").strip()
    try:
        hour_text, _, minute_text = text.partition(":")
        return dt.time(int(hour_text), int(minute_text or 0))
    except ValueError:
        raise InvalidConfigurationError(f"Invalid clock time: {raw!r}", setting=setting) from None


def load_timezone(name: str) -> dt.tzinfo:
    cleaned = str(name or "").strip()
    if not cleaned or cleaned.upper() == "UTC":
        return dt.timezone.utc
    try:
        return ZoneInfo(cleaned)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidConfigurationError(f"Unknown time zone: {name!r}", setting="BUSINESS_TIMEZONE") from None


@dataclass(frozen=True)
class WorkWindow:
    open: dt.time
    close: dt.time

    @property
    def is_empty(self) -> bool:
        return self.close <= self.open


@dataclass(frozen=True)
class BusinessHoursConfig:
    """Weekly opening hours (Monday=0) plus full-day holidays, in one time zone."""

    windows: Mapping[int, WorkWindow] = field(default_factory=dict)
    holidays: frozenset[dt.date] = frozenset()
    tz: dt.tzinfo = dt.timezone.utc

    @classmethod
    def weekly(
        cls,
        *,
        open_at: dt.time = dt.time(8),
        close_at: dt.time = dt.time(18),
        days: Iterable[int] = (0, 1, 2, 3, 4),
        holidays: Iterable[dt.date] = (),
        tz: dt.tzinfo = dt.timezone.utc,
    ) -> BusinessHoursConfig:
        window = WorkWindow(open_at, close_at)
        return cls(windows={day: window for day in days}, holidays=frozenset(holidays), tz=tz)

    @classmethod
    def from_settings(cls, config, *, holidays: Iterable[dt.date] = ()) -> BusinessHoursConfig:  # noqa: ANN001
        days = config.default_business_days
        if not days:
            raise InvalidConfigurationError("No business days configured", setting="DEFAULT_BUSINESS_DAYS")
        return cls.weekly(
            open_at=parse_clock(config.DEFAULT_BUSINESS_OPEN, setting="DEFAULT_BUSINESS_OPEN"),
            close_at=parse_clock(config.DEFAULT_BUSINESS_CLOSE, setting="DEFAULT_BUSINESS_CLOSE"),
            days=days,
            holidays=holidays,
            tz=load_timezone(config.BUSINESS_TIMEZONE),
        )

    def local_date(self, instant: dt.datetime) -> dt.date:
        return as_utc(instant).astimezone(self.tz).date()

    def window_on(self, day: dt.date) -> tuple[dt.datetime, dt.datetime] | None:
        """Return the UTC [open, close) bounds for ``day``, or None when closed."""
        if day in self.holidays:
            return None
        window = self.windows.get(day.weekday())
        if window is None or window.is_empty:
            return None
        opens = dt.datetime.combine(day, window.open, tzinfo=self.tz).astimezone(dt.timezone.utc)
        closes = dt.datetime.combine(day, window.close, tzinfo=self.tz).astimezone(dt.timezone.utc)
        if closes <= opens:
            return None
        return opens, closes


def elapsed_business_time(start: dt.datetime, end: dt.datetime, config: BusinessHoursConfig) -> dt.timedelta:
    """Working time inside [start, end); zero when start >= end."""
    start = as_utc(start)
    end = as_utc(end)
    if start >= end:
        return _ZERO

    total = _ZERO
    day = config.local_date(start)
    last_day = config.local_date(end)
    while day <= last_day:
        bounds = config.window_on(day)
        if bounds is not None:
            lower = max(start, bounds[0])
            upper = min(end, bounds[1])
            if lower < upper:
                total += upper - lower
        day += _ONE_DAY
    return total


def add_business_time(
    start: dt.datetime,
    hours: float,
    config: BusinessHoursConfig,
    *,
    max_days: int = MAX_DAY_SCAN,
) -> dt.datetime:
    """Return the first instant at which ``hours`` of business time have elapsed since ``start``.

    Raises InvalidConfigurationError when the calendar offers no business time
    within ``max_days`` days, which keeps holiday-only or empty calendars from
    looping forever.
    """
    if hours < 0:
        raise InvariantViolationError("Cannot add negative business time", details={"hours": hours})
    start = as_utc(start)
    remaining = dt.timedelta(hours=hours)
    if remaining <= _ZERO:
        return start

    day = config.local_date(start)
    for _ in range(max_days):
        bounds = config.window_on(day)
        if bounds is not None:
            lower = max(start, bounds[0])
            upper = bounds[1]
            if lower < upper:
                available = upper - lower
                if remaining <= available:
                    return lower + remaining
                remaining -= available
        day += _ONE_DAY

    raise InvalidConfigurationError(
        f"Business calendar has no working time within {max_days} days",
        setting="business_hours",
    )


def format_duration(value: dt.timedelta, *, breached: bool = False) -> str:
    """Human-facing rendering used in notification texts: ``2d 3h``, ``5h 10m`` or ``40m``."""
    seconds = int(value.total_seconds())
    if seconds <= 0:
        return "SLA breached" if breached else "due now"
    hours, remainder = divmod(seconds, 3600)
    minutes = remainder // 60
    if hours > 24:
        days, hours = divmod(hours, 24)
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
