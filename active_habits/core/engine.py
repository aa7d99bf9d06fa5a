from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from active_habits.core.clock import Clock
from active_habits.core.day_sequence import (
    RegenerationResult,
    extend_horizon,
    get_current_day,
    get_future_days,
    materialize,
    mark_executed,
    regenerate,
)
from active_habits.core.errors import FutureDayError, HabitDayNotFoundError, HabitEngineError
from active_habits.core.habit_locks import HabitLocks
from active_habits.core.progress import progress_snapshot
from active_habits.core.reconciler import ReconcileResult, cancel_all, reconcile_habit
from active_habits.db.models import Habit
from active_habits.db.repositories.habits_repo import (
    UNSET,
    HabitDraft,
    create_habit,
    delete_habit,
    find_habit_day,
    get_habit,
    list_habit_days,
    list_habits,
    replace_fire_times,
    update_habit,
)
from active_habits.db.repositories.notifications_repo import count_by_status
from active_habits.db.session import SessionFactory, session_scope
from active_habits.notifications.dispatcher import NotificationDispatcher

_SCHEDULE_FIELDS = {"end_on", "weekdays"}


@dataclass(slots=True)
class HabitChanges:
    name: Any = UNSET
    color: Any = UNSET
    end_on: Any = UNSET
    weekdays: Any = UNSET
    fire_times: Any = UNSET


@dataclass(slots=True)
class HabitOutcome:
    habit_id: str
    changed: set[str] = field(default_factory=set)
    regeneration: RegenerationResult | None = None
    reconcile: ReconcileResult | None = None


@dataclass(slots=True)
class RolloverReport:
    day: date
    results: dict[str, ReconcileResult] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)


class SchedulingEngine:
    """Entry point used by the API and the rollover loop.

    Store and dispatcher work is blocking and runs in worker threads; every write
    to one habit's days or notifications happens inside that habit's lock.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        *,
        horizon_days: int = 14,
        allow_backfill: bool = True,
    ) -> None:
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.clock = clock
        self.horizon_days = max(0, int(horizon_days))
        self.allow_backfill = allow_backfill
        self.locks = HabitLocks()
        self.last_rollover_day: date | None = None

    # ---------- triggers ----------
    async def create_habit(self, draft: HabitDraft) -> HabitOutcome:
        habit_id = str(uuid.uuid4())
        async with self.locks.hold(habit_id):
            return await asyncio.to_thread(self._create_pass, habit_id, draft)

    async def edit_habit(self, habit_id: str, changes: HabitChanges) -> HabitOutcome:
        async with self.locks.hold(habit_id):
            return await asyncio.to_thread(self._edit_pass, habit_id, changes)

    async def mark_day(self, habit_id: str, day: date, executed: bool) -> dict[str, Any]:
        async with self.locks.hold(habit_id):
            return await asyncio.to_thread(self._mark_pass, habit_id, day, executed)

    async def delete_habit(self, habit_id: str) -> ReconcileResult:
        async with self.locks.hold(habit_id):
            return await asyncio.to_thread(self._delete_pass, habit_id)

    async def reconcile(self, habit_id: str) -> ReconcileResult:
        """Extend the horizon and reconcile; concurrent requests are coalesced."""
        return await self.locks.coalesce(habit_id, lambda: asyncio.to_thread(self._refresh_pass, habit_id))

    async def rollover(self) -> RolloverReport:
        today = self.clock.today()
        habit_ids = await asyncio.to_thread(self._habit_ids)
        report = RolloverReport(day=today)
        logger.info("rollover start day={} habits={}", today.isoformat(), len(habit_ids))
        for habit_id in habit_ids:
            try:
                report.results[habit_id] = await self.reconcile(habit_id)
            except (HabitEngineError, SQLAlchemyError) as exc:
                report.failures[habit_id] = str(exc)[:300]
                logger.error("rollover habit={} error: {}", habit_id, exc)
        self.last_rollover_day = today
        logger.info(
            "rollover done day={} reconciled={} failed={}",
            today.isoformat(),
            len(report.results),
            len(report.failures),
        )
        return report

    def needs_rollover(self) -> bool:
        return self.last_rollover_day is None or self.clock.today() > self.last_rollover_day

    async def maybe_rollover(self) -> RolloverReport | None:
        """Run a rollover when a calendar-day boundary was crossed since the last one."""
        if not self.needs_rollover():
            return None
        return await self.rollover()

    # ---------- reads ----------
    async def progress(self, habit_id: str) -> dict[str, Any]:
        return await asyncio.to_thread(self._describe, habit_id)

    async def list_habits(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._list)

    # ---------- passes (worker thread) ----------
    def _habit_ids(self) -> list[str]:
        with session_scope(self.session_factory) as session:
            return [habit.id for habit in list_habits(session)]

    def _reconcile_if_needed(self, session, habit: Habit) -> ReconcileResult:
        if not habit.fire_times and not count_by_status(session, habit.id).get("scheduled"):
            return ReconcileResult(habit_id=habit.id)
        return reconcile_habit(session, habit, self.dispatcher, self.clock)

    def _create_pass(self, habit_id: str, draft: HabitDraft) -> HabitOutcome:
        with session_scope(self.session_factory) as session:
            habit = create_habit(session, draft, today=self.clock.today(), habit_id=habit_id)
            created = extend_horizon(session, habit, self.clock, self.horizon_days)
            outcome = HabitOutcome(habit_id=habit.id, regeneration=RegenerationResult(created=len(created)))
            outcome.reconcile = self._reconcile_if_needed(session, habit)
        logger.info(
            "habit created id={} name={} days={} scheduled={}",
            habit_id,
            habit.name,
            len(created),
            outcome.reconcile.scheduled,
        )
        return outcome

    def _edit_pass(self, habit_id: str, changes: HabitChanges) -> HabitOutcome:
        with session_scope(self.session_factory) as session:
            habit = get_habit(session, habit_id)
            outcome = HabitOutcome(habit_id=habit_id)
            outcome.changed = update_habit(
                session,
                habit,
                name=changes.name,
                color=changes.color,
                end_on=changes.end_on,
                weekdays=changes.weekdays,
            )
            if changes.fire_times is not UNSET:
                if replace_fire_times(session, habit, list(changes.fire_times)):
                    outcome.changed.add("fire_times")
            if outcome.changed & _SCHEDULE_FIELDS:
                outcome.regeneration = regenerate(session, habit, self.clock, self.horizon_days)
            if outcome.changed & (_SCHEDULE_FIELDS | {"fire_times"}):
                outcome.reconcile = reconcile_habit(session, habit, self.dispatcher, self.clock)
        logger.info("habit edited id={} changed={}", habit_id, sorted(outcome.changed))
        return outcome

    def _mark_pass(self, habit_id: str, day: date, executed: bool) -> dict[str, Any]:
        today = self.clock.today()
        with session_scope(self.session_factory) as session:
            habit = get_habit(session, habit_id)
            if day > today:
                raise FutureDayError(day, today)
            habit_day = find_habit_day(session, habit_id, day)
            if habit_day is None and habit.tracks(day):
                habit_day = materialize(session, habit, day, day, self.clock)[0]
            if habit_day is None:
                raise HabitDayNotFoundError(habit_id, day)
            changed = mark_executed(
                session,
                habit_day,
                executed,
                self.clock,
                allow_backfill=self.allow_backfill,
            )
            return {
                "habit_id": habit_id,
                "date": day.isoformat(),
                "was_executed": habit_day.was_executed,
                "executed_at": habit_day.executed_at.isoformat() if habit_day.executed_at else None,
                "changed": changed,
            }

    def _delete_pass(self, habit_id: str) -> ReconcileResult:
        with session_scope(self.session_factory) as session:
            habit = get_habit(session, habit_id)
            result = cancel_all(session, habit, self.dispatcher, self.clock)
            delete_habit(session, habit)
        logger.info("habit deleted id={} canceled={} errors={}", habit_id, result.canceled, len(result.errors))
        return result

    def _refresh_pass(self, habit_id: str) -> ReconcileResult:
        with session_scope(self.session_factory) as session:
            habit = get_habit(session, habit_id)
            extend_horizon(session, habit, self.clock, self.horizon_days)
            return self._reconcile_if_needed(session, habit)

    def _describe(self, habit_id: str) -> dict[str, Any]:
        with session_scope(self.session_factory) as session:
            habit = get_habit(session, habit_id)
            return self._habit_payload(session, habit)

    def _list(self) -> list[dict[str, Any]]:
        with session_scope(self.session_factory) as session:
            return [self._habit_payload(session, habit) for habit in list_habits(session)]

    def _habit_payload(self, session, habit: Habit) -> dict[str, Any]:
        today = self.clock.today()
        days = list_habit_days(session, habit.id)
        current = get_current_day(session, habit, self.clock)
        return {
            "id": habit.id,
            "name": habit.name,
            "color": habit.color,
            "created_on": habit.created_on.isoformat(),
            "end_on": habit.end_on.isoformat() if habit.end_on else None,
            "weekdays": sorted(habit.weekday_set),
            "fire_times": [
                {"hour": ft.hour, "minute": ft.minute, "weekdays": sorted(ft.weekday_set)} for ft in habit.fire_times
            ],
            "progress": progress_snapshot(days, today, habit.weekday_set, habit.created_on),
            "current_day": current.date.isoformat() if current else None,
            "future_days": len(get_future_days(session, habit, self.clock)),
            "notifications": count_by_status(session, habit.id),
        }
