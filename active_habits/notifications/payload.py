from __future__ import annotations

from datetime import datetime
from typing import Any

from active_habits.db.models import Habit


def build_reminder_payload(habit: Habit, fire_at: datetime) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": habit.get_title_text(),
        "subtitle": habit.get_subtitle_text(),
        "habit_id": habit.id,
        "color": habit.color,
        "fire_at": fire_at.isoformat(),
    }
    description = habit.get_description_text()
    if description:
        payload["body"] = description
    return payload
