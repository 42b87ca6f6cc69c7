from datetime import datetime

from fastapi import APIRouter, Depends, Query

from backend.app.domain.models import TableState, TimeWindow
from backend.app.routers.deps import get_scheduler, raise_for_failure
from backend.app.routers.schemas import (
    MaintenanceIn,
    OccupancyOut,
    ReservationOut,
    RotationAlertOut,
    TableOut,
    WalkInIn,
)
from backend.app.services.occupancy import occupancy_stats, rotation_report
from backend.app.services.scheduler import AvailabilityScheduler


router = APIRouter()


@router.get("/tables", response_model=list[TableOut])
async def list_tables(
    state: TableState | None = None,
    min_capacity: int | None = Query(default=None, ge=1),
    max_capacity: int | None = Query(default=None, ge=1),
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> list[TableOut]:
    tables = await scheduler.list_tables(state=state, min_capacity=min_capacity, max_capacity=max_capacity)
    return [TableOut.from_record(t) for t in tables]


@router.get("/tables/stats/occupancy", response_model=OccupancyOut)
async def occupancy(scheduler: AvailabilityScheduler = Depends(get_scheduler)) -> OccupancyOut:
    return OccupancyOut.from_stats(occupancy_stats(await scheduler.list_tables()))


@router.get("/tables/stats/rotation", response_model=list[RotationAlertOut])
async def rotation(
    threshold_minutes: int | None = Query(default=None, ge=1),
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> list[RotationAlertOut]:
    threshold = threshold_minutes or scheduler.policy.occupancy_attention_minutes
    occupied = await scheduler.list_tables(state=TableState.OCCUPIED)
    return [RotationAlertOut.from_alert(a) for a in rotation_report(occupied, scheduler.now(), threshold)]


@router.get("/tables/cleaning-due", response_model=list[TableOut])
async def cleaning_due(scheduler: AvailabilityScheduler = Depends(get_scheduler)) -> list[TableOut]:
    return [TableOut.from_record(t) for t in await scheduler.list_needing_cleaning()]


@router.get("/tables/{table_id}", response_model=TableOut)
async def get_table(table_id: int, scheduler: AvailabilityScheduler = Depends(get_scheduler)) -> TableOut:
    outcome = await scheduler.get_table(table_id)
    raise_for_failure(outcome)
    return TableOut.from_record(outcome)


@router.get("/tables/{table_id}/reservations", response_model=list[ReservationOut])
async def table_reservations(
    table_id: int,
    start_ts: datetime | None = None,
    end_ts: datetime | None = None,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> list[ReservationOut]:
    window = TimeWindow(start_ts, end_ts) if start_ts is not None and end_ts is not None else None
    outcome = await scheduler.list_reservations_for_table(table_id, window)
    raise_for_failure(outcome)
    return [ReservationOut.from_record(r) for r in outcome]


@router.post("/tables/{table_id}/release", response_model=TableOut)
async def release_table(table_id: int, scheduler: AvailabilityScheduler = Depends(get_scheduler)) -> TableOut:
    outcome = await scheduler.release(table_id)
    raise_for_failure(outcome)
    return TableOut.from_record(outcome)


@router.post("/tables/{table_id}/walk-in", response_model=TableOut)
async def seat_walk_in(
    table_id: int,
    payload: WalkInIn,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> TableOut:
    outcome = await scheduler.seat_walk_in(table_id, payload.party_size, payload.duration_minutes, payload.order_id)
    raise_for_failure(outcome)
    return TableOut.from_record(outcome)


@router.post("/tables/{table_id}/maintenance", response_model=TableOut)
async def start_maintenance(
    table_id: int,
    payload: MaintenanceIn | None = None,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> TableOut:
    outcome = await scheduler.set_maintenance(table_id, payload.note if payload else None)
    raise_for_failure(outcome)
    return TableOut.from_record(outcome)


@router.post("/tables/{table_id}/maintenance/clear", response_model=TableOut)
async def clear_maintenance(table_id: int, scheduler: AvailabilityScheduler = Depends(get_scheduler)) -> TableOut:
    outcome = await scheduler.clear_maintenance(table_id)
    raise_for_failure(outcome)
    return TableOut.from_record(outcome)


@router.post("/tables/{table_id}/cleaning", response_model=TableOut)
async def register_cleaning(table_id: int, scheduler: AvailabilityScheduler = Depends(get_scheduler)) -> TableOut:
    outcome = await scheduler.register_cleaning(table_id)
    raise_for_failure(outcome)
    return TableOut.from_record(outcome)


@router.post("/tables/{table_id}/orders/{order_id}/open", response_model=TableOut)
async def order_opened(
    table_id: int,
    order_id: str,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> TableOut:
    outcome = await scheduler.open_order(table_id, order_id)
    raise_for_failure(outcome)
    return TableOut.from_record(outcome)


@router.post("/tables/{table_id}/orders/{order_id}/close", response_model=TableOut)
async def order_closed(
    table_id: int,
    order_id: str,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> TableOut:
    outcome = await scheduler.close_order(table_id, order_id)
    raise_for_failure(outcome)
    return TableOut.from_record(outcome)
