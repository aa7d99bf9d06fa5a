from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    tz: ZoneInfo

    def now(self) -> datetime: ...

    def today(self) -> date: ...


def normalize_day(value: date | datetime, tz: ZoneInfo) -> date:
    """Strip the time of day, using ``tz`` as the calendar-day boundary.

    Naive datetimes are taken as already expressed in ``tz``.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(tz).date()
    return value


def combine(day: date, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time(hour=hour, minute=minute), tzinfo=tz)


def ensure_aware(value: datetime, tz: ZoneInfo) -> datetime:
    # SQLite hands back naive datetimes; they are stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).astimezone(tz)
    return value.astimezone(tz)


class SystemClock:
    def __init__(self, tz_name: str) -> None:
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock pinned to a moment; ``advance`` moves it forward."""

    def __init__(self, now: datetime, tz_name: str = "UTC") -> None:
        self.tz = ZoneInfo(tz_name)
        self._now = ensure_aware(now, self.tz) if now.tzinfo else now.replace(tzinfo=self.tz)

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def advance(self, **delta: float) -> None:
        self._now = self._now + timedelta(**delta)

    def set(self, now: datetime) -> None:
        self._now = now if now.tzinfo else now.replace(tzinfo=self.tz)
