from __future__ import annotations

import asyncio
from datetime import datetime

from loguru import logger

from active_habits.core.engine import RolloverReport, SchedulingEngine

_last_rollover_at: datetime | None = None
_last_rollover_error: str | None = None


def rollover_status() -> dict[str, str | None]:
    return {
        "last_rollover_at": _last_rollover_at.isoformat() if _last_rollover_at else None,
        "last_rollover_error": _last_rollover_error,
    }


async def run_rollover_tick(engine: SchedulingEngine) -> RolloverReport | None:
    global _last_rollover_at
    global _last_rollover_error
    try:
        report = await engine.maybe_rollover()
    except Exception as exc:
        _last_rollover_error = str(exc)[:300]
        logger.error("rollover tick error: {}", exc)
        return None
    if report is not None:
        _last_rollover_at = engine.clock.now()
        _last_rollover_error = next(iter(report.failures.values()), None)
    return report


async def run_rollover_scheduler(engine: SchedulingEngine, interval_sec: int) -> None:
    interval = max(5, int(interval_sec))
    logger.info("rollover scheduler started (check every {}s)", interval)
    while True:
        await run_rollover_tick(engine)
        await asyncio.sleep(interval)
