"""
Clock providers.

The clock is the only source of "now" for the core. ``SystemClock`` reads real
time in the reference timezone; ``FixedClock`` is a settable clock used by the
tests and by the fake-date mode (``DAILYWORD_FAKE_NOW``).
"""
from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Protocol, Union
from zoneinfo import ZoneInfo

from . import config

_MOMENT_RE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})(?:[T ](\d{2}):(\d{2})(?::(\d{2}))?)?$')


class Clock(Protocol):
    tz: ZoneInfo

    def now(self) -> datetime: ...

    def today(self) -> date: ...

    def timestamp_ms(self) -> int: ...


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def parse_moment(value: Union[str, datetime], tz: ZoneInfo) -> datetime:
    """Turn a datetime or a ``YYYY-MM-DD[THH:MM[:SS]]`` string into an aware datetime.

    Naive values are read as wall-clock time in ``tz``. A bare date means noon.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz)
        return value.astimezone(tz)
    m = _MOMENT_RE.match(value.strip())
    if not m:
        raise ValueError(f"Unrecognised moment {value!r}")
    year, month, day, hour, minute, second = m.groups()
    return datetime(
        int(year), int(month), int(day),
        int(hour) if hour else 12,
        int(minute) if minute else 0,
        int(second) if second else 0,
        tzinfo=tz,
    )


def next_midnight(moment: datetime) -> datetime:
    """First instant of the day after ``moment``, in ``moment``'s zone."""
    tomorrow = moment.date() + timedelta(days=1)
    return datetime.combine(tomorrow, time(0), tzinfo=moment.tzinfo)


def from_timestamp_ms(ms: int, tz: ZoneInfo) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone(tz)


class SystemClock:
    """Real time, expressed in the reference timezone."""

    def __init__(self, tz: Optional[ZoneInfo] = None):
        self.tz = tz or ZoneInfo(config.TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def timestamp_ms(self) -> int:
        return _to_ms(self.now())


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, moment: Union[str, datetime], tz: Optional[ZoneInfo] = None):
        self.tz = tz or ZoneInfo(config.TIMEZONE)
        self._now = parse_moment(moment, self.tz)

    def set(self, moment: Union[str, datetime]) -> None:
        self._now = parse_moment(moment, self.tz)

    def advance(self, delta: Optional[timedelta] = None, **kwargs) -> datetime:
        self._now = self._now + (delta if delta is not None else timedelta(**kwargs))
        return self._now

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def timestamp_ms(self) -> int:
        return _to_ms(self._now)


def clock_from_settings() -> Clock:
    tz = ZoneInfo(config.TIMEZONE)
    if config.FAKE_NOW:
        return FixedClock(config.FAKE_NOW, tz)
    return SystemClock(tz)
