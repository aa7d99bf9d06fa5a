from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from active_habits.core.progress import (
    current_streak,
    executed_count,
    execution_percentage,
    progress_snapshot,
    total_count,
)


@dataclass(slots=True)
class _Day:
    date: date
    was_executed: bool


def _days(*pairs: tuple[int, bool]) -> list[_Day]:
    return [_Day(date(2026, 3, day), executed) for day, executed in pairs]


def test_empty_sequence_has_no_progress() -> None:
    assert executed_count([]) == 0
    assert total_count([]) == 0
    assert execution_percentage([]) == 0.0
    assert current_streak([], date(2026, 3, 2)) == 0


def test_percentage_counts_executed_over_tracked_days() -> None:
    days = _days((2, True), (3, True), (4, False), (5, True))
    assert executed_count(days) == 3
    assert total_count(days) == 4
    assert execution_percentage(days) == 75.0


def test_streak_stops_at_first_unexecuted_day() -> None:
    days = _days((2, True), (3, False), (4, True), (5, True))
    assert current_streak(days, date(2026, 3, 5)) == 2


def test_streak_is_zero_when_today_is_not_executed_yet() -> None:
    days = _days((2, True), (3, True), (4, False))
    assert current_streak(days, date(2026, 3, 4)) == 0


def test_streak_ignores_future_days() -> None:
    days = _days((2, True), (3, True), (4, False), (5, False))
    assert current_streak(days, date(2026, 3, 3)) == 2


def test_streak_skips_days_excluded_by_recurrence() -> None:
    # Mondays and Wednesdays; Thursday 2026-03-05 is not an occurrence.
    days = _days((2, True), (4, True))
    assert current_streak(days, date(2026, 3, 5), weekdays=frozenset({0, 2})) == 2


def test_streak_breaks_on_missing_occurrence() -> None:
    days = _days((2, True), (4, True))
    assert current_streak(days, date(2026, 3, 4)) == 1


def test_progress_snapshot_reports_today() -> None:
    days = _days((2, True), (3, False), (4, True))
    snapshot = progress_snapshot(days, date(2026, 3, 4))
    assert snapshot == {
        "executed_count": 2,
        "total_count": 3,
        "execution_percentage": 66.67,
        "current_streak": 1,
        "today_tracked": True,
        "today_executed": True,
    }
