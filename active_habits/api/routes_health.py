from fastapi import APIRouter

from active_habits.scheduler import rollover_status

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"ok": True, **rollover_status()}
