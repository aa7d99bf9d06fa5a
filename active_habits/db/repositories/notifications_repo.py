from __future__ import annotations

from collections import Counter
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from active_habits.core.errors import ConsistencyError
from active_habits.db.models import Notification, NotificationStatus


def list_active_notifications(session: Session, habit_id: str) -> list[Notification]:
    """Non-canceled notifications of a habit, oldest fire time first."""
    rows = list(
        session.scalars(
            select(Notification)
            .where(Notification.habit_id == habit_id, Notification.status != NotificationStatus.CANCELED)
            .order_by(Notification.fire_at)
        ).all()
    )
    duplicates = [fire_at for fire_at, count in Counter(row.fire_at for row in rows).items() if count > 1]
    if duplicates:
        raise ConsistencyError(
            f"Duplicate active notifications for habit={habit_id} fire_at={duplicates[0].isoformat()}"
        )
    return rows


def list_scheduled_notifications(session: Session, habit_id: str) -> list[Notification]:
    return [row for row in list_active_notifications(session, habit_id) if row.status == NotificationStatus.SCHEDULED]


def create_notification(session: Session, *, habit_id: str, fire_at: datetime, dispatcher_id: str) -> Notification:
    row = Notification(
        habit_id=habit_id,
        fire_at=fire_at,
        dispatcher_id=dispatcher_id,
        status=NotificationStatus.SCHEDULED,
    )
    session.add(row)
    try:
        session.flush()
    except IntegrityError as exc:
        raise ConsistencyError(f"Notification for habit={habit_id} at {fire_at.isoformat()} already exists") from exc
    return row


def mark_canceled(session: Session, row: Notification, *, now: datetime) -> None:
    row.status = NotificationStatus.CANCELED
    row.canceled_at = now
    session.flush()


def mark_delivered_until(session: Session, habit_id: str, now: datetime) -> int:
    """Scheduled notifications whose fire time has passed are delivered by the OS."""
    delivered = 0
    for row in list_scheduled_notifications(session, habit_id):
        if row.fire_at <= now:
            row.status = NotificationStatus.DELIVERED
            row.delivered_at = now
            delivered += 1
    if delivered:
        session.flush()
    return delivered


def count_by_status(session: Session, habit_id: str) -> dict[str, int]:
    rows = session.scalars(select(Notification.status).where(Notification.habit_id == habit_id)).all()
    return dict(Counter(rows))
