from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

from active_habits import scheduler
from active_habits.core.engine import RolloverReport


class _FakeClock:
    def now(self) -> datetime:
        return datetime(2026, 3, 3, 0, 1, tzinfo=timezone.utc)


class _FakeEngine:
    def __init__(self, report: RolloverReport | None = None, error: Exception | None = None) -> None:
        self.clock = _FakeClock()
        self._report = report
        self._error = error

    async def maybe_rollover(self) -> RolloverReport | None:
        if self._error is not None:
            raise self._error
        return self._report


def test_tick_records_last_rollover() -> None:
    report = RolloverReport(day=date(2026, 3, 3))
    assert asyncio.run(scheduler.run_rollover_tick(_FakeEngine(report))) is report
    status = scheduler.rollover_status()
    assert status["last_rollover_at"] == "2026-03-03T00:01:00+00:00"
    assert status["last_rollover_error"] is None


def test_tick_survives_engine_errors() -> None:
    result = asyncio.run(scheduler.run_rollover_tick(_FakeEngine(error=RuntimeError("db locked"))))
    assert result is None
    assert scheduler.rollover_status()["last_rollover_error"] == "db locked"


def test_tick_without_boundary_keeps_state() -> None:
    asyncio.run(scheduler.run_rollover_tick(_FakeEngine(RolloverReport(day=date(2026, 3, 3)))))
    before = scheduler.rollover_status()
    assert asyncio.run(scheduler.run_rollover_tick(_FakeEngine())) is None
    assert scheduler.rollover_status() == before
