from fastapi import APIRouter, Depends

from backend.app.domain.models import TimeWindow
from backend.app.routers.deps import get_scheduler, raise_for_failure
from backend.app.routers.schemas import (
    AssignIn,
    AssignOut,
    AvailabilitySearchIn,
    AvailabilitySearchOut,
    TableOut,
)
from backend.app.services.scheduler import AvailabilityScheduler, rank_candidates


router = APIRouter()


@router.post("/availability/search", response_model=AvailabilitySearchOut)
async def search_availability(
    payload: AvailabilitySearchIn,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> AvailabilitySearchOut:
    window = TimeWindow.of(payload.start_ts, payload.duration_minutes)
    available = await scheduler.find_available_tables(window, payload.party_size, payload.location)
    raise_for_failure(available)

    best = scheduler.best_fit(available, payload.party_size)
    return AvailabilitySearchOut(
        tables=[TableOut.from_record(t) for t in rank_candidates(available, payload.party_size)],
        best_fit=TableOut.from_record(best) if best is not None else None,
    )


@router.post("/availability/assign", response_model=AssignOut)
async def assign_table(
    payload: AssignIn,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> AssignOut:
    outcome = await scheduler.auto_assign(payload.party_size, payload.location)
    raise_for_failure(outcome)
    return AssignOut(
        table=TableOut.from_record(outcome.table),
        alternatives=[TableOut.from_record(t) for t in outcome.alternatives],
    )
