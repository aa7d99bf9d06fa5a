"""Materialization of a habit's ordered day sequence.

A habit's days are the calendar dates inside ``[created_on, end_on]`` that its
recurrence allows. Records are created lazily, up to a rolling horizon past
today, and always reused: materializing never touches execution state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from loguru import logger
from sqlalchemy.orm import Session

from active_habits.core.clock import Clock
from active_habits.core.errors import BackfillDisabledError, FutureDayError, InvalidRangeError
from active_habits.db.models import Habit, HabitDay
from active_habits.db.repositories.calendar_days_repo import get_or_create_calendar_day, list_calendar_days
from active_habits.db.repositories.habits_repo import count_habit_days, latest_habit_day_date, list_habit_days


@dataclass(slots=True)
class RegenerationResult:
    removed: int = 0
    created: int = 0


def _iter_dates(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def horizon_end(habit: Habit, today: date, horizon_days: int) -> date:
    end = today + timedelta(days=max(0, int(horizon_days)))
    if habit.end_on is not None and habit.end_on < end:
        return habit.end_on
    return end


def materialize(session: Session, habit: Habit, from_date: date, to_date: date, clock: Clock) -> list[HabitDay]:
    if from_date > to_date:
        raise InvalidRangeError(from_date, to_date)

    existing = {hd.date: hd for hd in list_habit_days(session, habit.id, start=from_date, end=to_date)}
    calendar_days = {cd.date: cd for cd in list_calendar_days(session, from_date, to_date)}

    sequence: list[HabitDay] = []
    created = 0
    for day in _iter_dates(from_date, to_date):
        if not habit.tracks(day):
            continue
        habit_day = existing.get(day)
        if habit_day is None:
            calendar_day = calendar_days.get(day) or get_or_create_calendar_day(session, day, clock.tz)
            habit_day = HabitDay(habit_id=habit.id, calendar_day=calendar_day, was_executed=False)
            session.add(habit_day)
            created += 1
        sequence.append(habit_day)
    if created:
        session.flush()
        logger.debug(
            "materialize habit={} from={} to={} created={}",
            habit.id,
            from_date.isoformat(),
            to_date.isoformat(),
            created,
        )
    return sequence


def extend_horizon(session: Session, habit: Habit, clock: Clock, horizon_days: int) -> list[HabitDay]:
    """Materialize the days after the last known one, up to the horizon.

    Returns only the newly covered segment.
    """
    end = horizon_end(habit, clock.today(), horizon_days)
    last = latest_habit_day_date(session, habit.id)
    start = habit.created_on if last is None else max(habit.created_on, last + timedelta(days=1))
    if start > end:
        return []
    return materialize(session, habit, start, end, clock)


def regenerate(session: Session, habit: Habit, clock: Clock, horizon_days: int) -> RegenerationResult:
    """Rebuild the sequence after the recurrence or the active range changed.

    Days outside the active range are dropped. Days the new recurrence excludes are
    dropped only when they are still in the future; recorded history stays. Every
    day the new rule covers up to the horizon is then materialized, past ones too.
    """
    today = clock.today()
    result = RegenerationResult()
    for habit_day in list_habit_days(session, habit.id):
        day = habit_day.date
        out_of_range = day < habit.created_on or (habit.end_on is not None and day > habit.end_on)
        excluded_future = day > today and not habit.tracks(day)
        if out_of_range or excluded_future:
            session.delete(habit_day)
            result.removed += 1
    if result.removed:
        session.flush()
        session.expire(habit, ["days"])

    before = count_habit_days(session, habit.id)
    end = horizon_end(habit, today, horizon_days)
    if habit.created_on <= end:
        materialize(session, habit, habit.created_on, end, clock)
    result.created = count_habit_days(session, habit.id) - before
    logger.info(
        "regenerate habit={} removed={} created={}",
        habit.id,
        result.removed,
        result.created,
    )
    return result


def get_current_day(session: Session, habit: Habit, clock: Clock) -> HabitDay | None:
    today = clock.today()
    if not habit.tracks(today):
        return None
    days = list_habit_days(session, habit.id, start=today, end=today)
    return days[0] if days else None


def get_future_days(session: Session, habit: Habit, clock: Clock) -> list[HabitDay]:
    return list_habit_days(session, habit.id, after=clock.today())


def mark_executed(
    session: Session,
    habit_day: HabitDay,
    executed: bool,
    clock: Clock,
    *,
    allow_backfill: bool = True,
) -> bool:
    """Record execution for today or a past day. Returns False when nothing changed."""
    today = clock.today()
    day = habit_day.date
    if day > today:
        raise FutureDayError(day, today)
    if day < today and not allow_backfill:
        raise BackfillDisabledError(day, today)
    executed = bool(executed)
    if habit_day.was_executed == executed:
        return False
    habit_day.was_executed = executed
    habit_day.executed_at = clock.now() if executed else None
    session.flush()
    logger.info(
        "mark_executed habit={} day={} executed={}",
        habit_day.habit_id,
        day.isoformat(),
        executed,
    )
    return True
