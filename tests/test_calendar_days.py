from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from active_habits.db.models import Base, Habit, HabitColor, decode_weekdays, encode_weekdays
from active_habits.db.repositories.calendar_days_repo import get_or_create_calendar_day, list_calendar_days
from active_habits.db.session import make_engine, make_session_factory, session_scope
from active_habits.notifications.payload import build_reminder_payload


def _session_factory(tmp_path: Path):
    engine = make_engine(f"sqlite+pysqlite:///{(tmp_path / 'habits.db').as_posix()}")
    Base.metadata.create_all(engine)
    return make_session_factory(engine)


def test_calendar_day_is_shared_per_date(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    utc = ZoneInfo("UTC")
    with session_scope(factory) as session:
        first = get_or_create_calendar_day(session, date(2026, 3, 2), utc)
        second = get_or_create_calendar_day(session, datetime(2026, 3, 2, 21, 15), utc)
        assert first.id == second.id

    with session_scope(factory) as session:
        again = get_or_create_calendar_day(session, date(2026, 3, 2), utc)
        assert again.id == first.id
        assert [cd.date for cd in list_calendar_days(session, date(2026, 3, 1), date(2026, 3, 31))] == [
            date(2026, 3, 2)
        ]


def test_calendar_day_boundary_follows_timezone(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    late_evening_utc = datetime(2026, 3, 2, 23, 30, tzinfo=timezone.utc)
    with session_scope(factory) as session:
        berlin = get_or_create_calendar_day(session, late_evening_utc, ZoneInfo("Europe/Berlin"))
        new_york = get_or_create_calendar_day(session, late_evening_utc, ZoneInfo("America/New_York"))
        assert berlin.date == date(2026, 3, 3)
        assert new_york.date == date(2026, 3, 2)


def test_weekday_encoding() -> None:
    assert encode_weekdays([4, 0, 2, 0]) == "0,2,4"
    assert encode_weekdays(()) == ""
    assert decode_weekdays("0,2,4") == frozenset({0, 2, 4})
    assert decode_weekdays("") == frozenset()
    with pytest.raises(ValueError):
        encode_weekdays([7])


def test_habit_color_persistence_identifier() -> None:
    assert HabitColor.from_persistence_identifier(" Purple ") is HabitColor.PURPLE
    assert HabitColor.RED.persistence_identifier == "red"
    with pytest.raises(ValueError):
        HabitColor.from_persistence_identifier("teal")


def test_habit_tracks_range_and_recurrence() -> None:
    habit = Habit(name="Gym", created_on=date(2026, 3, 2), end_on=date(2026, 3, 31), weekdays="0,3")
    assert habit.tracks(date(2026, 3, 2))
    assert habit.tracks(date(2026, 3, 5))
    assert not habit.tracks(date(2026, 3, 3))
    assert not habit.tracks(date(2026, 2, 23))
    assert not habit.tracks(date(2026, 4, 6))


def test_reminder_payload_copy() -> None:
    habit = Habit(id="h-1", name="Go swimming", color="green", created_on=date(2026, 3, 2), weekdays="")
    fire_at = datetime(2026, 3, 3, 18, 0, tzinfo=timezone.utc)
    assert build_reminder_payload(habit, fire_at) == {
        "title": "Go swimming",
        "subtitle": "Have you practiced this activity?",
        "habit_id": "h-1",
        "color": "green",
        "fire_at": "2026-03-03T18:00:00+00:00",
    }
