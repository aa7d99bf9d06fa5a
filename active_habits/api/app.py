import asyncio

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from active_habits.api.routes_habits import router as habits_router
from active_habits.api.routes_health import router as health_router
from active_habits.config import settings
from active_habits.core.clock import SystemClock
from active_habits.core.engine import SchedulingEngine
from active_habits.core.errors import (
    ConsistencyError,
    HabitDayNotFoundError,
    HabitEngineError,
    HabitNotFoundError,
)
from active_habits.db.session import SessionLocal
from active_habits.notifications.dispatcher import build_dispatcher
from active_habits.scheduler import run_rollover_scheduler


def build_engine() -> SchedulingEngine:
    return SchedulingEngine(
        SessionLocal,
        build_dispatcher(),
        SystemClock(settings.timezone),
        horizon_days=settings.horizon_days,
        allow_backfill=settings.allow_backfill,
    )


def _status_for(exc: HabitEngineError) -> int:
    if isinstance(exc, (HabitNotFoundError, HabitDayNotFoundError)):
        return 404
    if isinstance(exc, ConsistencyError):
        return 409
    return 400


async def _engine_error_handler(_request: Request, exc: HabitEngineError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 409:
        logger.error("request failed status={} err={}", status, exc)
    return JSONResponse(status_code=status, content={"ok": False, "error": type(exc).__name__, "detail": str(exc)})


def create_app(engine: SchedulingEngine | None = None, *, run_scheduler: bool = True) -> FastAPI:
    app = FastAPI(title="active-habits")
    app.state.engine = engine
    app.state.rollover_task = None

    app.include_router(health_router)
    app.include_router(habits_router)
    app.add_exception_handler(HabitEngineError, _engine_error_handler)

    @app.post("/rollover")
    async def rollover(request: Request) -> dict:
        report = await request.app.state.engine.rollover()
        return {
            "day": report.day.isoformat(),
            "results": {habit_id: result.as_dict() for habit_id, result in report.results.items()},
            "failures": report.failures,
        }

    @app.on_event("startup")
    async def on_startup() -> None:
        if app.state.engine is None:
            app.state.engine = build_engine()
        if run_scheduler:
            task = app.state.rollover_task
            if task is None or task.done():
                app.state.rollover_task = asyncio.create_task(
                    run_rollover_scheduler(app.state.engine, settings.rollover_check_interval_sec)
                )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        task = app.state.rollover_task
        if task and not task.done():
            task.cancel()

    return app


app = create_app()
