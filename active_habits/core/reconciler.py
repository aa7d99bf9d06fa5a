"""Keep a habit's pending reminders in lock-step with its fire times.

The desired schedule and the diff against stored notifications are pure; only
``apply_plan`` talks to the dispatcher. Cancellations go out before new
schedules so a moved fire time never fires twice at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy.orm import Session

from active_habits.core.clock import Clock, combine
from active_habits.core.day_sequence import get_current_day, get_future_days
from active_habits.core.errors import AuthorizationError, DispatcherError, DispatcherNotFoundError
from active_habits.db.models import FireTime, Habit, Notification
from active_habits.db.repositories.notifications_repo import (
    create_notification,
    list_scheduled_notifications,
    mark_canceled,
    mark_delivered_until,
)
from active_habits.notifications.dispatcher import NotificationDispatcher
from active_habits.notifications.payload import build_reminder_payload


@dataclass(slots=True, frozen=True)
class DispatchFailure:
    operation: str
    fire_at: datetime
    error: str
    kind: str


@dataclass(slots=True)
class ReconciliationPlan:
    to_cancel: list[Notification] = field(default_factory=list)
    to_schedule: list[datetime] = field(default_factory=list)
    unchanged: list[Notification] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_cancel and not self.to_schedule


@dataclass(slots=True)
class ReconcileResult:
    habit_id: str
    scheduled: int = 0
    canceled: int = 0
    unchanged: int = 0
    delivered: int = 0
    dispatcher_calls: int = 0
    authorized: bool | None = None
    errors: list[DispatchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def as_dict(self) -> dict:
        return {
            "habit_id": self.habit_id,
            "scheduled": self.scheduled,
            "canceled": self.canceled,
            "unchanged": self.unchanged,
            "delivered": self.delivered,
            "authorized": self.authorized,
            "errors": [
                {"operation": f.operation, "fire_at": f.fire_at.isoformat(), "kind": f.kind, "error": f.error}
                for f in self.errors
            ],
        }


def _utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc)


def compute_desired_fire_times(
    future_days: Iterable[date],
    fire_times: Sequence[FireTime],
    now: datetime,
    tz: ZoneInfo,
) -> set[datetime]:
    """Every (day, fire time) moment still ahead of ``now``, as UTC datetimes."""
    desired: set[datetime] = set()
    for day in future_days:
        for fire_time in fire_times:
            if not fire_time.applies_to(day):
                continue
            moment = combine(day, fire_time.hour, fire_time.minute, tz)
            if moment > now:
                desired.add(_utc(moment))
    return desired


def plan_reconciliation(desired: set[datetime], existing: Sequence[Notification]) -> ReconciliationPlan:
    plan = ReconciliationPlan()
    matched: set[datetime] = set()
    for row in existing:
        key = _utc(row.fire_at)
        if key in desired and key not in matched:
            matched.add(key)
            plan.unchanged.append(row)
        else:
            plan.to_cancel.append(row)
    plan.to_schedule = sorted(desired - matched)
    plan.to_cancel.sort(key=lambda row: _utc(row.fire_at))
    return plan


def plan_for_habit(session: Session, habit: Habit, clock: Clock) -> ReconciliationPlan:
    now = clock.now()
    future_days = [hd.date for hd in get_future_days(session, habit, clock)]
    desired = compute_desired_fire_times(future_days, habit.fire_times, now, clock.tz)
    existing = [row for row in list_scheduled_notifications(session, habit.id) if row.fire_at > now]
    # Today's reminders are never newly scheduled, but those already pending stay
    # as long as a current fire time still produces them.
    current = get_current_day(session, habit, clock)
    if current is not None:
        pending = {_utc(row.fire_at) for row in existing}
        desired |= compute_desired_fire_times([current.date], habit.fire_times, now, clock.tz) & pending
    return plan_reconciliation(desired, existing)


def _failure(operation: str, fire_at: datetime, exc: Exception) -> DispatchFailure:
    kind = "authorization" if isinstance(exc, AuthorizationError) else "scheduling"
    return DispatchFailure(operation=operation, fire_at=fire_at, error=str(exc)[:300], kind=kind)


def apply_plan(
    session: Session,
    habit: Habit,
    plan: ReconciliationPlan,
    dispatcher: NotificationDispatcher,
    clock: Clock,
    result: ReconcileResult,
) -> ReconcileResult:
    now = clock.now()
    result.unchanged = len(plan.unchanged)

    for row in plan.to_cancel:
        result.dispatcher_calls += 1
        try:
            dispatcher.cancel(row.dispatcher_id)
        except DispatcherNotFoundError:
            logger.warning("reconcile cancel habit={} id={} status=already_gone", habit.id, row.dispatcher_id)
        except DispatcherError as exc:
            result.errors.append(_failure("cancel", row.fire_at, exc))
            logger.warning("reconcile cancel habit={} id={} err={}", habit.id, row.dispatcher_id, exc)
            continue
        mark_canceled(session, row, now=now)
        result.canceled += 1

    if not plan.to_schedule:
        return result

    result.dispatcher_calls += 1
    result.authorized = bool(dispatcher.is_authorized())
    if not result.authorized:
        for fire_at in plan.to_schedule:
            result.errors.append(
                DispatchFailure(
                    operation="schedule",
                    fire_at=fire_at,
                    error="notifications are not authorized",
                    kind="authorization",
                )
            )
        logger.warning("reconcile habit={} skipped={} reason=not_authorized", habit.id, len(plan.to_schedule))
        return result

    for fire_at in plan.to_schedule:
        local_fire_at = fire_at.astimezone(clock.tz)
        result.dispatcher_calls += 1
        try:
            dispatcher_id = dispatcher.schedule(local_fire_at, build_reminder_payload(habit, local_fire_at))
        except DispatcherError as exc:
            result.errors.append(_failure("schedule", fire_at, exc))
            logger.warning("reconcile schedule habit={} fire_at={} err={}", habit.id, fire_at.isoformat(), exc)
            continue
        create_notification(session, habit_id=habit.id, fire_at=fire_at, dispatcher_id=dispatcher_id)
        result.scheduled += 1
    return result


def reconcile_habit(
    session: Session,
    habit: Habit,
    dispatcher: NotificationDispatcher,
    clock: Clock,
) -> ReconcileResult:
    result = ReconcileResult(habit_id=habit.id)
    result.delivered = mark_delivered_until(session, habit.id, clock.now())
    plan = plan_for_habit(session, habit, clock)
    if plan.is_empty:
        result.unchanged = len(plan.unchanged)
        logger.debug("reconcile habit={} unchanged={} status=noop", habit.id, result.unchanged)
        return result
    apply_plan(session, habit, plan, dispatcher, clock, result)
    logger.info(
        "reconcile habit={} scheduled={} canceled={} unchanged={} errors={}",
        habit.id,
        result.scheduled,
        result.canceled,
        result.unchanged,
        len(result.errors),
    )
    return result


def cancel_all(session: Session, habit: Habit, dispatcher: NotificationDispatcher, clock: Clock) -> ReconcileResult:
    """Withdraw every pending reminder of a habit, e.g. before deleting it."""
    result = ReconcileResult(habit_id=habit.id)
    result.delivered = mark_delivered_until(session, habit.id, clock.now())
    plan = ReconciliationPlan(to_cancel=list_scheduled_notifications(session, habit.id))
    apply_plan(session, habit, plan, dispatcher, clock, result)
    return result