from __future__ import annotations

import threading
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, MultipleResultsFound
from sqlalchemy.orm import Session

from active_habits.core.clock import normalize_day
from active_habits.core.errors import ConsistencyError
from active_habits.db.models import CalendarDay

_registry_lock = threading.Lock()


def find_calendar_day(session: Session, day: date) -> CalendarDay | None:
    try:
        return session.scalars(select(CalendarDay).where(CalendarDay.date == day)).one_or_none()
    except MultipleResultsFound as exc:
        raise ConsistencyError(f"Duplicate calendar days for {day.isoformat()}") from exc


def get_or_create_calendar_day(session: Session, value: date | datetime, tz: ZoneInfo) -> CalendarDay:
    day = normalize_day(value, tz)
    with _registry_lock:
        existing = find_calendar_day(session, day)
        if existing is not None:
            return existing
        calendar_day = CalendarDay(date=day)
        session.add(calendar_day)
        try:
            session.flush()
        except IntegrityError as exc:
            raise ConsistencyError(f"Calendar day {day.isoformat()} was created concurrently") from exc
        return calendar_day


def list_calendar_days(session: Session, start: date, end: date) -> list[CalendarDay]:
    return list(
        session.scalars(
            select(CalendarDay).where(CalendarDay.date >= start, CalendarDay.date <= end).order_by(CalendarDay.date)
        ).all()
    )
