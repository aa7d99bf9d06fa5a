from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import MultipleResultsFound
from sqlalchemy.orm import Session

from active_habits.core.errors import ConsistencyError, HabitNotFoundError, HabitValidationError
from active_habits.db.models import CalendarDay, FireTime, Habit, HabitColor, HabitDay, encode_weekdays


@dataclass(slots=True, frozen=True)
class FireTimeSpec:
    hour: int
    minute: int = 0
    weekdays: tuple[int, ...] = ()


@dataclass(slots=True)
class HabitDraft:
    name: str
    color: HabitColor | str = HabitColor.GREEN
    end_on: date | None = None
    weekdays: tuple[int, ...] = ()
    fire_times: list[FireTimeSpec] = field(default_factory=list)
    created_on: date | None = None


UNSET = object()


def _clean_name(name: str) -> str:
    cleaned = " ".join(str(name or "").split())
    if not cleaned:
        raise HabitValidationError("Habit name must not be empty")
    if len(cleaned) > 255:
        raise HabitValidationError("Habit name must be at most 255 characters")
    return cleaned


def _clean_color(color: HabitColor | str) -> str:
    try:
        return HabitColor.from_persistence_identifier(getattr(color, "value", color)).persistence_identifier
    except ValueError as exc:
        raise HabitValidationError(f"Unknown habit color: {color}") from exc


def _clean_weekdays(weekdays) -> str:
    try:
        return encode_weekdays(weekdays)
    except (TypeError, ValueError) as exc:
        raise HabitValidationError(str(exc)) from exc


def _check_range(created_on: date, end_on: date | None) -> None:
    if end_on is not None and end_on < created_on:
        raise HabitValidationError(
            f"Challenge end {end_on.isoformat()} is before the habit start {created_on.isoformat()}"
        )


def _build_fire_times(specs: list[FireTimeSpec]) -> list[FireTime]:
    seen: set[tuple[int, int]] = set()
    rows: list[FireTime] = []
    for spec in specs:
        if not 0 <= int(spec.hour) <= 23 or not 0 <= int(spec.minute) <= 59:
            raise HabitValidationError(f"Invalid fire time {spec.hour}:{spec.minute}")
        key = (int(spec.hour), int(spec.minute))
        if key in seen:
            raise HabitValidationError(f"Duplicate fire time {key[0]:02d}:{key[1]:02d}")
        seen.add(key)
        rows.append(FireTime(hour=key[0], minute=key[1], weekdays=_clean_weekdays(spec.weekdays)))
    return rows


def create_habit(session: Session, draft: HabitDraft, *, today: date, habit_id: str | None = None) -> Habit:
    created_on = draft.created_on or today
    _check_range(created_on, draft.end_on)
    habit = Habit(
        id=habit_id or str(uuid.uuid4()),
        name=_clean_name(draft.name),
        color=_clean_color(draft.color),
        created_on=created_on,
        end_on=draft.end_on,
        weekdays=_clean_weekdays(draft.weekdays),
    )
    habit.fire_times = _build_fire_times(draft.fire_times)
    session.add(habit)
    session.flush()
    return habit


def get_habit(session: Session, habit_id: str) -> Habit:
    habit = session.get(Habit, habit_id)
    if habit is None:
        raise HabitNotFoundError(habit_id)
    return habit


def list_habits(session: Session) -> list[Habit]:
    return list(session.scalars(select(Habit).order_by(Habit.created_on, Habit.name)).all())


def update_habit(
    session: Session,
    habit: Habit,
    *,
    name=UNSET,
    color=UNSET,
    end_on=UNSET,
    weekdays=UNSET,
) -> set[str]:
    """Apply the given fields and return the names of those that actually changed."""
    changed: set[str] = set()
    if name is not UNSET:
        value = _clean_name(name)
        if value != habit.name:
            habit.name = value
            changed.add("name")
    if color is not UNSET:
        value = _clean_color(color)
        if value != habit.color:
            habit.color = value
            changed.add("color")
    if end_on is not UNSET:
        _check_range(habit.created_on, end_on)
        if end_on != habit.end_on:
            habit.end_on = end_on
            changed.add("end_on")
    if weekdays is not UNSET:
        value = _clean_weekdays(weekdays)
        if value != habit.weekdays:
            habit.weekdays = value
            changed.add("weekdays")
    if changed:
        session.flush()
    return changed


def replace_fire_times(session: Session, habit: Habit, specs: list[FireTimeSpec]) -> bool:
    current = {(ft.hour, ft.minute, ft.weekdays) for ft in habit.fire_times}
    rows = _build_fire_times(specs)
    desired = {(ft.hour, ft.minute, ft.weekdays) for ft in rows}
    if current == desired:
        return False
    # Fire times are immutable; an edit swaps the whole set.
    habit.fire_times.clear()
    session.flush()
    habit.fire_times.extend(rows)
    session.flush()
    return True


def delete_habit(session: Session, habit: Habit) -> None:
    session.delete(habit)
    session.flush()


def list_habit_days(
    session: Session,
    habit_id: str,
    *,
    start: date | None = None,
    end: date | None = None,
    after: date | None = None,
) -> list[HabitDay]:
    stmt = select(HabitDay).join(CalendarDay, HabitDay.calendar_day_id == CalendarDay.id).where(
        HabitDay.habit_id == habit_id
    )
    if start is not None:
        stmt = stmt.where(CalendarDay.date >= start)
    if end is not None:
        stmt = stmt.where(CalendarDay.date <= end)
    if after is not None:
        stmt = stmt.where(CalendarDay.date > after)
    return list(session.scalars(stmt.order_by(CalendarDay.date)).unique().all())


def find_habit_day(session: Session, habit_id: str, day: date) -> HabitDay | None:
    stmt = (
        select(HabitDay)
        .join(CalendarDay, HabitDay.calendar_day_id == CalendarDay.id)
        .where(HabitDay.habit_id == habit_id, CalendarDay.date == day)
    )
    try:
        return session.scalars(stmt).unique().one_or_none()
    except MultipleResultsFound as exc:
        raise ConsistencyError(f"Duplicate habit days for habit={habit_id} day={day.isoformat()}") from exc


def latest_habit_day_date(session: Session, habit_id: str) -> date | None:
    return session.scalar(
        select(func.max(CalendarDay.date))
        .select_from(HabitDay)
        .join(CalendarDay, HabitDay.calendar_day_id == CalendarDay.id)
        .where(HabitDay.habit_id == habit_id)
    )


def count_habit_days(session: Session, habit_id: str) -> int:
    return int(session.scalar(select(func.count()).select_from(HabitDay).where(HabitDay.habit_id == habit_id)) or 0)
