from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

from active_habits.core.clock import FixedClock
from active_habits.core.day_sequence import (
    extend_horizon,
    get_current_day,
    get_future_days,
    mark_executed,
    materialize,
    regenerate,
)
from active_habits.core.errors import BackfillDisabledError, FutureDayError, InvalidRangeError
from active_habits.db.models import Base
from active_habits.db.repositories.habits_repo import (
    HabitDraft,
    count_habit_days,
    create_habit,
    find_habit_day,
    get_habit,
    list_habit_days,
    update_habit,
)
from active_habits.db.session import make_engine, make_session_factory, session_scope

MONDAY = date(2026, 3, 2)


def _session_factory(tmp_path: Path):
    engine = make_engine(f"sqlite+pysqlite:///{(tmp_path / 'habits.db').as_posix()}")
    Base.metadata.create_all(engine)
    return make_session_factory(engine)


def _clock(day: date = MONDAY, hour: int = 9) -> FixedClock:
    return FixedClock(datetime(day.year, day.month, day.day, hour, 0))


def test_materialize_twice_returns_the_same_records(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read"), today=clock.today())
        first = materialize(session, habit, MONDAY, MONDAY + timedelta(days=6), clock)
        second = materialize(session, habit, MONDAY, MONDAY + timedelta(days=6), clock)

        assert [hd.id for hd in first] == [hd.id for hd in second]
        assert [hd.date for hd in first] == [MONDAY + timedelta(days=i) for i in range(7)]
        assert count_habit_days(session, habit.id) == 7


def test_materialize_follows_weekday_recurrence(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Gym", weekdays=(0, 2, 4)), today=clock.today())
        days = materialize(session, habit, MONDAY, MONDAY + timedelta(days=6), clock)

        assert [hd.date for hd in days] == [date(2026, 3, 2), date(2026, 3, 4), date(2026, 3, 6)]


def test_materialize_keeps_execution_state(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read"), today=clock.today())
        habit_id = habit.id
        days = materialize(session, habit, MONDAY, MONDAY + timedelta(days=2), clock)
        assert mark_executed(session, days[0], True, clock) is True

    with session_scope(factory) as session:
        habit = get_habit(session, habit_id)
        days = materialize(session, habit, MONDAY, MONDAY + timedelta(days=4), clock)
        assert days[0].was_executed is True
        assert [hd.was_executed for hd in days[1:]] == [False] * 4


def test_materialize_rejects_inverted_range(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read"), today=clock.today())
        with pytest.raises(InvalidRangeError):
            materialize(session, habit, MONDAY + timedelta(days=1), MONDAY, clock)


def test_extend_horizon_stops_at_challenge_end(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read", end_on=date(2026, 3, 4)), today=clock.today())
        created = extend_horizon(session, habit, clock, 14)
        assert [hd.date for hd in created] == [date(2026, 3, 2), date(2026, 3, 3), date(2026, 3, 4)]
        assert extend_horizon(session, habit, clock, 14) == []

        clock.advance(days=3)
        assert get_current_day(session, habit, clock) is None
        assert get_future_days(session, habit, clock) == []


def test_extend_horizon_only_adds_the_new_segment(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read"), today=clock.today())
        assert len(extend_horizon(session, habit, clock, 3)) == 4

        clock.advance(days=1)
        created = extend_horizon(session, habit, clock, 3)
        assert [hd.date for hd in created] == [date(2026, 3, 6)]
        assert get_current_day(session, habit, clock).date == date(2026, 3, 3)
        assert [hd.date for hd in get_future_days(session, habit, clock)] == [
            date(2026, 3, 4),
            date(2026, 3, 5),
            date(2026, 3, 6),
        ]


def test_mark_executed_rejects_future_days(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read"), today=clock.today())
        extend_horizon(session, habit, clock, 3)
        tomorrow = find_habit_day(session, habit.id, MONDAY + timedelta(days=1))
        with pytest.raises(FutureDayError):
            mark_executed(session, tomorrow, True, clock)
        assert tomorrow.was_executed is False


def test_mark_executed_is_idempotent_and_reversible(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read"), today=clock.today())
        extend_horizon(session, habit, clock, 3)
        today = get_current_day(session, habit, clock)

        assert mark_executed(session, today, True, clock) is True
        assert today.executed_at == clock.now()
        assert mark_executed(session, today, True, clock) is False

        assert mark_executed(session, today, False, clock) is True
        assert today.was_executed is False
        assert today.executed_at is None


def test_backfill_can_be_disabled(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read"), today=clock.today())
        extend_horizon(session, habit, clock, 3)
        monday = find_habit_day(session, habit.id, MONDAY)

        clock.advance(days=2)
        with pytest.raises(BackfillDisabledError):
            mark_executed(session, monday, True, clock, allow_backfill=False)
        assert mark_executed(session, monday, True, clock) is True


def test_regenerate_drops_excluded_future_days_and_keeps_history(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read"), today=clock.today())
        habit_id = habit.id
        extend_horizon(session, habit, clock, 7)
        mark_executed(session, get_current_day(session, habit, clock), True, clock)

    clock.advance(days=2)
    with session_scope(factory) as session:
        habit = get_habit(session, habit_id)
        assert update_habit(session, habit, weekdays=(0,)) == {"weekdays"}
        result = regenerate(session, habit, clock, 7)

        assert result.removed == 4
        assert result.created == 0
        days = list_habit_days(session, habit_id)
        assert [hd.date for hd in days] == [
            date(2026, 3, 2),
            date(2026, 3, 3),
            date(2026, 3, 4),
            date(2026, 3, 9),
        ]
        assert days[0].was_executed is True


def test_regenerate_after_end_date_extension_fills_the_gap(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read", end_on=date(2026, 3, 4)), today=clock.today())
        extend_horizon(session, habit, clock, 14)

        update_habit(session, habit, end_on=date(2026, 3, 8))
        result = regenerate(session, habit, clock, 14)

        assert result.removed == 0
        assert result.created == 4
        assert list_habit_days(session, habit.id)[-1].date == date(2026, 3, 8)


def test_regenerate_fills_days_of_a_reopened_challenge(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Read", end_on=date(2026, 3, 4)), today=clock.today())
        extend_horizon(session, habit, clock, 14)

        clock.set(datetime(2026, 3, 10, 9, 0))
        update_habit(session, habit, end_on=date(2026, 3, 20))
        result = regenerate(session, habit, clock, 14)

        assert result.created == 16
        days = [hd.date for hd in list_habit_days(session, habit.id)]
        assert days == [date(2026, 3, 2) + timedelta(days=i) for i in range(19)]


def test_regenerate_fills_past_occurrences_of_an_added_weekday(tmp_path: Path) -> None:
    factory = _session_factory(tmp_path)
    clock = _clock()
    with session_scope(factory) as session:
        habit = create_habit(session, HabitDraft(name="Gym", weekdays=(0,)), today=clock.today())
        extend_horizon(session, habit, clock, 14)
        mark_executed(session, get_current_day(session, habit, clock), True, clock)

        clock.set(datetime(2026, 3, 11, 9, 0))
        update_habit(session, habit, weekdays=(0, 2))
        result = regenerate(session, habit, clock, 14)

        assert result.removed == 0
        assert result.created == 5
        days = list_habit_days(session, habit.id)
        assert [hd.date for hd in days] == [
            date(2026, 3, 2),
            date(2026, 3, 4),
            date(2026, 3, 9),
            date(2026, 3, 11),
            date(2026, 3, 16),
            date(2026, 3, 18),
            date(2026, 3, 23),
            date(2026, 3, 25),
        ]
        assert days[0].was_executed is True
