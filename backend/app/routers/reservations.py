from fastapi import APIRouter, Depends, Query, status

from backend.app.domain.models import TimeWindow
from backend.app.domain.results import CapacityExceeded, Conflict, is_failure
from backend.app.routers.deps import get_scheduler, raise_for_failure
from backend.app.routers.schemas import CancelIn, RescheduleIn, ReservationOut, ReserveIn, TableOut
from backend.app.services.scheduler import AvailabilityScheduler, rank_candidates


router = APIRouter()

MAX_ALTERNATES = 4


async def _raise_with_alternates(scheduler: AvailabilityScheduler, outcome, party_size: int) -> None:
    if isinstance(outcome, Conflict):
        # Offer other tables for the same window, and later times on the requested table
        available = await scheduler.find_available_tables(outcome.window, party_size)
        ranked = rank_candidates(available, party_size) if not is_failure(available) else []
        later = []
        if outcome.table_id is not None:
            times = await scheduler.find_alternative_times(outcome.table_id, outcome.window, party_size)
            later = [w.start.isoformat() for w in times] if not is_failure(times) else []
        raise_for_failure(
            outcome,
            alternates=[TableOut.from_record(t).model_dump(mode="json") for t in ranked[:MAX_ALTERNATES]],
            alternate_times=later,
        )
    if isinstance(outcome, CapacityExceeded):
        larger = await scheduler.list_tables(min_capacity=party_size)
        raise_for_failure(outcome, alternates=[TableOut.from_record(t).model_dump(mode="json")
                                               for t in larger[:MAX_ALTERNATES]])
    raise_for_failure(outcome)


@router.post("/reservations", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReserveIn,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> ReservationOut:
    window = TimeWindow.of(payload.start_ts, payload.duration_minutes)
    outcome = await scheduler.reserve(
        payload.table_id,
        payload.client_id,
        window,
        payload.party_size,
        notes=payload.notes,
    )
    await _raise_with_alternates(scheduler, outcome, payload.party_size)
    return ReservationOut.from_record(outcome)


@router.get("/reservations/upcoming", response_model=list[ReservationOut])
async def upcoming_reservations(
    within_minutes: int = Query(default=120, ge=1, le=24 * 60),
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> list[ReservationOut]:
    return [ReservationOut.from_record(r) for r in await scheduler.list_upcoming(within_minutes)]


@router.get("/reservations/{reservation_id}", response_model=ReservationOut)
async def get_reservation(
    reservation_id: int,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> ReservationOut:
    outcome = await scheduler.get_reservation(reservation_id)
    raise_for_failure(outcome)
    return ReservationOut.from_record(outcome)


@router.patch("/reservations/{reservation_id}", response_model=ReservationOut)
async def reschedule_reservation(
    reservation_id: int,
    payload: RescheduleIn,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> ReservationOut:
    outcome = await scheduler.reschedule(
        reservation_id,
        table_id=payload.table_id,
        start=payload.start_ts,
        duration_minutes=payload.duration_minutes,
        party_size=payload.party_size,
        notes=payload.notes,
    )
    if isinstance(outcome, (Conflict, CapacityExceeded)):
        current = await scheduler.get_reservation(reservation_id)
        party_size = payload.party_size or (current.party_size if not is_failure(current) else 1)
        await _raise_with_alternates(scheduler, outcome, party_size)
    raise_for_failure(outcome)
    return ReservationOut.from_record(outcome)


@router.post("/reservations/{reservation_id}/confirm", response_model=ReservationOut)
async def confirm_reservation(
    reservation_id: int,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> ReservationOut:
    outcome = await scheduler.confirm(reservation_id)
    raise_for_failure(outcome)
    return ReservationOut.from_record(outcome)


@router.post("/reservations/{reservation_id}/seat", response_model=ReservationOut)
async def seat_reservation(
    reservation_id: int,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> ReservationOut:
    outcome = await scheduler.seat(reservation_id)
    raise_for_failure(outcome)
    return ReservationOut.from_record(outcome)


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationOut)
async def cancel_reservation(
    reservation_id: int,
    payload: CancelIn | None = None,
    scheduler: AvailabilityScheduler = Depends(get_scheduler),
) -> ReservationOut:
    outcome = await scheduler.cancel(reservation_id, payload.reason if payload else None)
    raise_for_failure(outcome)
    return ReservationOut.from_record(outcome)
