"""Progress figures derived from a habit's day sequence.

Everything here is a pure function of the days passed in; nothing is stored, so
streaks and percentages can never drift from the recorded execution facts.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Iterable, Protocol, Sequence


class DayLike(Protocol):
    @property
    def date(self) -> date: ...

    @property
    def was_executed(self) -> bool: ...


def executed_count(days: Iterable[DayLike]) -> int:
    return sum(1 for day in days if day.was_executed)


def total_count(days: Sequence[DayLike]) -> int:
    return len(days)


def execution_percentage(days: Sequence[DayLike]) -> float:
    total = total_count(days)
    if total == 0:
        return 0.0
    return executed_count(days) / total * 100


def _is_occurrence(day: date, weekdays: frozenset[int] | None, start: date | None) -> bool:
    if start is not None and day < start:
        return False
    return not weekdays or day.weekday() in weekdays


def current_streak(
    days: Sequence[DayLike],
    today: date,
    weekdays: frozenset[int] | None = None,
    start: date | None = None,
) -> int:
    """Consecutive executed occurrences ending at today or the latest tracked day before it.

    Dates the recurrence excludes are skipped. A date the recurrence includes but
    that has no record ends the streak, as does the first unexecuted day.
    """
    by_date = {day.date: day for day in days if day.date <= today}
    if not by_date:
        return 0

    streak = 0
    cursor = max(by_date)
    earliest = min(by_date)
    while cursor >= earliest:
        record = by_date.get(cursor)
        if record is None:
            if _is_occurrence(cursor, weekdays, start):
                break
        elif not record.was_executed:
            break
        else:
            streak += 1
        cursor -= timedelta(days=1)
    return streak


def progress_snapshot(
    days: Sequence[DayLike],
    today: date,
    weekdays: frozenset[int] | None = None,
    start: date | None = None,
) -> dict[str, Any]:
    current = next((day for day in days if day.date == today), None)
    return {
        "executed_count": executed_count(days),
        "total_count": total_count(days),
        "execution_percentage": round(execution_percentage(days), 2),
        "current_streak": current_streak(days, today, weekdays, start),
        "today_tracked": current is not None,
        "today_executed": bool(current is not None and current.was_executed),
    }
