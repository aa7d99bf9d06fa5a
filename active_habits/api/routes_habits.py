from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from active_habits.core.engine import HabitChanges, HabitOutcome, SchedulingEngine
from active_habits.db.models import HabitColor
from active_habits.db.repositories.habits_repo import FireTimeSpec, HabitDraft

router = APIRouter(prefix="/habits")


class FireTimeIn(BaseModel):
    hour: int = Field(ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    weekdays: list[int] = Field(default_factory=list)

    def to_spec(self) -> FireTimeSpec:
        return FireTimeSpec(hour=self.hour, minute=self.minute, weekdays=tuple(self.weekdays))


class HabitCreateIn(BaseModel):
    name: str
    color: HabitColor = HabitColor.GREEN
    end_on: date | None = None
    weekdays: list[int] = Field(default_factory=list)
    fire_times: list[FireTimeIn] = Field(default_factory=list)


class HabitEditIn(BaseModel):
    name: str | None = None
    color: HabitColor | None = None
    end_on: date | None = None
    weekdays: list[int] | None = None
    fire_times: list[FireTimeIn] | None = None


class DayMarkIn(BaseModel):
    executed: bool = True


def _engine(request: Request) -> SchedulingEngine:
    return request.app.state.engine


def _outcome_payload(outcome: HabitOutcome) -> dict:
    regeneration = outcome.regeneration
    return {
        "habit_id": outcome.habit_id,
        "changed": sorted(outcome.changed),
        "days_created": regeneration.created if regeneration else 0,
        "days_removed": regeneration.removed if regeneration else 0,
        "reconcile": outcome.reconcile.as_dict() if outcome.reconcile else None,
    }


@router.get("")
async def list_habits(request: Request) -> dict:
    return {"habits": await _engine(request).list_habits()}


@router.post("", status_code=201)
async def create_habit(payload: HabitCreateIn, request: Request) -> dict:
    engine = _engine(request)
    draft = HabitDraft(
        name=payload.name,
        color=payload.color,
        end_on=payload.end_on,
        weekdays=tuple(payload.weekdays),
        fire_times=[ft.to_spec() for ft in payload.fire_times],
    )
    outcome = await engine.create_habit(draft)
    return {**_outcome_payload(outcome), "habit": await engine.progress(outcome.habit_id)}


@router.get("/{habit_id}")
async def get_habit(habit_id: str, request: Request) -> dict:
    return await _engine(request).progress(habit_id)


@router.patch("/{habit_id}")
async def edit_habit(habit_id: str, payload: HabitEditIn, request: Request) -> dict:
    engine = _engine(request)
    changes = HabitChanges()
    fields = payload.model_fields_set
    if "name" in fields and payload.name is not None:
        changes.name = payload.name
    if "color" in fields and payload.color is not None:
        changes.color = payload.color
    if "end_on" in fields:
        changes.end_on = payload.end_on
    if "weekdays" in fields:
        changes.weekdays = tuple(payload.weekdays or ())
    if "fire_times" in fields:
        changes.fire_times = [ft.to_spec() for ft in payload.fire_times or []]
    outcome = await engine.edit_habit(habit_id, changes)
    return {**_outcome_payload(outcome), "habit": await engine.progress(habit_id)}


@router.delete("/{habit_id}")
async def delete_habit(habit_id: str, request: Request) -> dict:
    result = await _engine(request).delete_habit(habit_id)
    return {"deleted": habit_id, "reconcile": result.as_dict()}


@router.put("/{habit_id}/days/{day}")
async def mark_day(habit_id: str, day: date, payload: DayMarkIn, request: Request) -> dict:
    return await _engine(request).mark_day(habit_id, day, payload.executed)


@router.post("/{habit_id}/reconcile")
async def reconcile(habit_id: str, request: Request) -> dict:
    result = await _engine(request).reconcile(habit_id)
    return result.as_dict()
