import asyncio
from datetime import timedelta

import pytest

from backend.app.core.locks import LockTimeout
from backend.app.domain.models import ReservationState, TableState, TimeWindow
from backend.app.domain.policy import SchedulingPolicy
from backend.app.domain.results import (
    CapacityExceeded,
    Conflict,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)
from backend.app.services.scheduler import Assignment
from backend.app.services.tables import TableRegistry
from backend.tests.helpers import at


pytestmark = pytest.mark.asyncio(loop_scope="module")


async def test_reservation_inside_horizon_holds_table(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(18, 50)

    booked = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)

    assert booked.state is ReservationState.PENDING
    assert booked.end == at(20, 30)
    assert (await scheduler.get_table(table.id)).state is TableState.RESERVED

    clash = await scheduler.reserve(table.id, "client-2", TimeWindow.of(at(19, 30), 30), 2)
    assert isinstance(clash, Conflict)
    assert clash.table_id == table.id
    assert clash.conflicting_ids == (booked.id,)


async def test_adjacent_windows_do_not_conflict(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(18, 50)

    first = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)
    second = await scheduler.reserve(table.id, "client-3", TimeWindow.of(at(20, 30), 60), 2)

    assert second.state is ReservationState.PENDING
    assert [r.id for r in await scheduler.list_reservations_for_table(table.id)] == [first.id, second.id]


async def test_cancel_frees_table_and_window(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(18, 50)
    first = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)
    await scheduler.reserve(table.id, "client-3", TimeWindow.of(at(20, 30), 60), 2)

    cancelled = await scheduler.cancel(first.id, "guest called")

    assert cancelled.state is ReservationState.CANCELLED
    assert cancelled.cancel_reason == "guest called"
    # The 20:30 booking is outside the immediate-effect horizon
    assert (await scheduler.get_table(table.id)).state is TableState.FREE

    rebooked = await scheduler.reserve(table.id, "client-4", TimeWindow.of(at(19), 60), 2)
    assert rebooked.state is ReservationState.PENDING


async def test_cancel_keeps_table_held_for_next_arrival(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(18, 50)
    first = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(18, 55), 30), 2)
    await scheduler.reserve(table.id, "client-2", TimeWindow.of(at(19, 25), 30), 2)

    clock.set(19, 15)
    await scheduler.cancel(first.id)

    assert (await scheduler.get_table(table.id)).state is TableState.RESERVED


async def test_future_reservation_leaves_table_free(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(12)

    await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 2)

    assert (await scheduler.get_table(table.id)).state is TableState.FREE


async def test_capacity_is_enforced(scheduler, add_table, clock):
    table = await add_table(1, 2)

    outcome = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 60), 3)

    assert isinstance(outcome, CapacityExceeded)
    assert (outcome.party_size, outcome.capacity) == (3, 2)
    assert await scheduler.list_reservations_for_table(table.id) == []


@pytest.mark.parametrize(
    "window, party_size, message",
    [
        (TimeWindow.of(at(19), 20), 2, "at least 30 minutes"),
        (TimeWindow.of(at(19), 500), 2, "at most 480 minutes"),
        (TimeWindow.of(at(9), 60), 2, "start must be in the future"),
        (TimeWindow.of(at(11), 120), 2, "start must be in the future"),
        (TimeWindow(at(19), at(20) + timedelta(seconds=30)), 2, "whole number of minutes"),
        (TimeWindow.of(at(19), 60), 0, "party_size"),
    ],
)
async def test_invalid_bookings_are_rejected(scheduler, add_table, window, party_size, message):
    table = await add_table(1, 4)

    outcome = await scheduler.reserve(table.id, "client-1", window, party_size)

    assert isinstance(outcome, ValidationFailed)
    assert any(message in error for error in outcome.errors)


async def test_naive_start_is_rejected(scheduler, add_table):
    table = await add_table(1, 4)
    naive = at(19).replace(tzinfo=None)

    outcome = await scheduler.reserve(table.id, "client-1", TimeWindow.of(naive, 60), 2)

    assert isinstance(outcome, ValidationFailed)


async def test_unknown_ids_return_not_found(scheduler):
    assert isinstance(await scheduler.get_table(404), NotFound)
    assert isinstance(await scheduler.reserve(404, "client-1", TimeWindow.of(at(19), 60), 2), NotFound)
    assert isinstance(await scheduler.confirm(404), NotFound)
    assert isinstance(await scheduler.cancel(404), NotFound)
    assert isinstance(await scheduler.release(404), NotFound)


async def test_concurrent_reservations_for_same_window(scheduler, add_table):
    table = await add_table(1, 4)
    window = TimeWindow.of(at(19), 90)

    outcomes = await asyncio.gather(
        scheduler.reserve(table.id, "client-1", window, 2),
        scheduler.reserve(table.id, "client-2", window, 2),
    )

    assert sum(isinstance(o, Conflict) for o in outcomes) == 1
    assert len(await scheduler.list_reservations_for_table(table.id)) == 1


async def test_find_available_tables_and_best_fit(scheduler, add_table):
    small = await add_table(1, 2)
    medium = await add_table(2, 4)
    large = await add_table(3, 8)
    await add_table(4, 10)
    window = TimeWindow.of(at(19), 90)
    await scheduler.reserve(medium.id, "client-1", window, 4)

    available = await scheduler.find_available_tables(window, 6)

    assert [t.number for t in available] == [3, 4]
    assert scheduler.best_fit(available, 6) == large
    assert small not in await scheduler.find_available_tables(window, 3)
    # Read-only: the same answer twice
    assert await scheduler.find_available_tables(window, 6) == available


async def test_find_available_tables_skips_maintenance_and_filters_location(scheduler, add_table):
    patio = await add_table(1, 4, "Patio")
    await add_table(2, 4, "Main room")
    broken = await add_table(3, 4, "patio")
    await scheduler.set_maintenance(broken.id, "wobbly leg")

    available = await scheduler.find_available_tables(TimeWindow.of(at(19), 60), 2, location="PATIO")

    assert available == [await scheduler.get_table(patio.id)]


async def test_confirm_seat_release_completes_reservation(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(18, 50)
    booked = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)

    confirmed = await scheduler.confirm(booked.id)
    assert confirmed.state is ReservationState.CONFIRMED
    assert confirmed.seated_at is None

    clock.set(19, 2)
    seated = await scheduler.seat(booked.id)
    assert seated.seated_at == at(19, 2)
    assert (await scheduler.get_table(table.id)).state is TableState.OCCUPIED

    clock.set(20, 10)
    released = await scheduler.release(table.id)
    assert released.state is TableState.FREE
    assert (await scheduler.get_reservation(booked.id)).state is ReservationState.COMPLETED


async def test_seat_requires_confirmation(scheduler, add_table):
    table = await add_table(1, 4)
    booked = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)

    outcome = await scheduler.seat(booked.id)

    assert isinstance(outcome, InvalidTransition)
    assert (await scheduler.get_table(table.id)).state is TableState.FREE


async def test_terminal_reservations_cannot_move(scheduler, add_table):
    table = await add_table(1, 4)
    booked = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)
    await scheduler.cancel(booked.id)

    assert isinstance(await scheduler.confirm(booked.id), InvalidTransition)
    assert isinstance(await scheduler.cancel(booked.id), InvalidTransition)


async def test_release_requires_occupied_table(scheduler, add_table):
    table = await add_table(1, 4)

    outcome = await scheduler.release(table.id)

    assert isinstance(outcome, InvalidTransition)
    assert (outcome.current, outcome.attempted) == ("free", "free")


async def test_maintenance_cycle(scheduler, add_table, clock):
    table = await add_table(1, 4)

    in_maintenance = await scheduler.set_maintenance(table.id, "replace chair")
    assert in_maintenance.state is TableState.MAINTENANCE
    assert in_maintenance.maintenance_note == "replace chair"

    refused = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 60), 2)
    assert isinstance(refused, InvalidTransition)
    assert isinstance(await scheduler.seat_walk_in(table.id, 2), InvalidTransition)

    clock.advance(30)
    cleaned = await scheduler.register_cleaning(table.id)
    assert cleaned.last_cleaned_at == clock()

    cleared = await scheduler.clear_maintenance(table.id)
    assert cleared.state is TableState.FREE
    assert cleared.maintenance_note is None
    assert isinstance(await scheduler.clear_maintenance(table.id), InvalidTransition)


async def test_occupied_table_can_take_later_bookings(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(12)
    await scheduler.seat_walk_in(table.id, 2)

    later = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 60), 2)

    assert later.state is ReservationState.PENDING
    assert (await scheduler.get_table(table.id)).state is TableState.OCCUPIED


async def test_walk_in_blocked_by_upcoming_reservation(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(12)
    await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(13), 60), 2)

    outcome = await scheduler.seat_walk_in(table.id, 2, duration_minutes=90)

    assert isinstance(outcome, Conflict)
    short = await scheduler.seat_walk_in(table.id, 2, duration_minutes=45)
    assert short.state is TableState.OCCUPIED


async def test_walk_in_party_too_large(scheduler, add_table):
    table = await add_table(1, 2)

    assert isinstance(await scheduler.seat_walk_in(table.id, 5), CapacityExceeded)


async def test_open_and_close_order_on_free_table(scheduler, add_table):
    table = await add_table(1, 4)

    opened = await scheduler.open_order(table.id, "order-7")
    assert opened.state is TableState.OCCUPIED
    assert opened.current_order_id == "order-7"

    # A stale close for another order leaves the table alone
    untouched = await scheduler.close_order(table.id, "order-6")
    assert untouched.state is TableState.OCCUPIED

    closed = await scheduler.close_order(table.id, "order-7")
    assert closed.state is TableState.FREE
    assert closed.current_order_id is None


async def test_open_order_seats_arriving_reservation(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(18, 50)
    booked = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)
    await scheduler.confirm(booked.id)

    opened = await scheduler.open_order(table.id, "order-1")

    assert opened.state is TableState.OCCUPIED
    assert (await scheduler.get_reservation(booked.id)).seated_at == at(18, 50)

    await scheduler.close_order(table.id, "order-1")
    assert (await scheduler.get_reservation(booked.id)).state is ReservationState.COMPLETED


async def test_open_order_on_reserved_table_without_confirmation(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(18, 50)
    await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)

    outcome = await scheduler.open_order(table.id, "order-1")

    assert isinstance(outcome, InvalidTransition)
    assert (await scheduler.get_table(table.id)).current_order_id is None


async def test_auto_assign_prefers_location_then_fit(scheduler, add_table):
    await add_table(1, 2, "main")
    await add_table(2, 6, "main")
    terrace = await add_table(3, 8, "terrace")

    assigned = await scheduler.auto_assign(5, location="terrace")

    assert isinstance(assigned, Assignment)
    assert assigned.table.id == terrace.id
    assert assigned.table.state is TableState.OCCUPIED
    assert [t.number for t in assigned.alternatives] == [2]

    next_party = await scheduler.auto_assign(5)
    assert next_party.table.number == 2


async def test_auto_assign_reports_why_nothing_fits(scheduler, add_table):
    table = await add_table(1, 4)

    too_big = await scheduler.auto_assign(9)
    assert isinstance(too_big, CapacityExceeded)
    assert too_big.capacity == 4

    await scheduler.seat_walk_in(table.id, 4)
    assert isinstance(await scheduler.auto_assign(2), Conflict)


async def test_list_tables_filters(scheduler, add_table):
    await add_table(1, 2)
    busy = await add_table(2, 4)
    await add_table(3, 8)
    await scheduler.seat_walk_in(busy.id, 3)

    assert [t.number for t in await scheduler.list_tables(min_capacity=3, max_capacity=8)] == [2, 3]
    assert [t.number for t in await scheduler.list_tables(state=TableState.OCCUPIED)] == [2]
    assert [t.number for t in await scheduler.list_tables(state=TableState.FREE, min_capacity=4)] == [3]


async def test_list_upcoming(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(18)
    soon = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(18, 30), 60), 2)
    await scheduler.reserve(table.id, "client-2", TimeWindow.of(at(21), 60), 2)

    assert [r.id for r in await scheduler.list_upcoming(60)] == [soon.id]


async def test_reconfigure_replaces_policy(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(18)
    scheduler.reconfigure(SchedulingPolicy(immediate_effect_minutes=90))

    await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 60), 2)

    assert scheduler.policy.immediate_effect_minutes == 90
    assert (await scheduler.get_table(table.id)).state is TableState.RESERVED


async def test_failed_hold_rolls_back_new_reservation(scheduler, add_table, clock, monkeypatch):
    table = await add_table(1, 4)
    clock.set(18, 50)

    async def broken_set_state(self, table_id, new_state):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(TableRegistry, "set_state", broken_set_state)
    with pytest.raises(RuntimeError):
        await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)
    monkeypatch.undo()

    assert await scheduler.list_reservations_for_table(table.id) == []
    assert (await scheduler.get_table(table.id)).state is TableState.FREE
    # Lock was released on the way out
    assert (await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)).id is not None


async def test_rejected_hold_rolls_back_new_reservation(scheduler, add_table, clock, monkeypatch):
    table = await add_table(1, 4)
    clock.set(18, 50)

    async def refuse(self, table_id, new_state):
        return InvalidTransition("table", table_id, "free", new_state.value)

    monkeypatch.setattr(TableRegistry, "set_state", refuse)
    outcome = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)
    monkeypatch.undo()

    assert isinstance(outcome, InvalidTransition)
    assert await scheduler.list_reservations_for_table(table.id) == []
    assert (await scheduler.get_table(table.id)).state is TableState.FREE


async def test_reschedule_moves_time_on_same_table(scheduler, add_table):
    table = await add_table(1, 4)
    booked = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)

    moved = await scheduler.reschedule(booked.id, start=at(21))

    assert (moved.id, moved.table_id) == (booked.id, table.id)
    assert moved.window == TimeWindow(at(21), at(22, 30))
    assert moved.notes == booked.notes
    freed = await scheduler.reserve(table.id, "client-2", TimeWindow.of(at(19), 90), 2)
    assert freed.state is ReservationState.PENDING


async def test_reschedule_may_overlap_its_own_window(scheduler, add_table):
    table = await add_table(1, 4)
    booked = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)

    moved = await scheduler.reschedule(booked.id, start=at(19, 30), duration_minutes=120, party_size=3)

    assert moved.window == TimeWindow(at(19, 30), at(21, 30))
    assert (moved.party_size, moved.duration_minutes) == (3, 120)


async def test_reschedule_into_another_booking_conflicts(scheduler, add_table):
    table = await add_table(1, 4)
    first = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 60), 2)
    second = await scheduler.reserve(table.id, "client-2", TimeWindow.of(at(21), 60), 2)

    outcome = await scheduler.reschedule(first.id, start=at(20, 30))

    assert isinstance(outcome, Conflict)
    assert outcome.conflicting_ids == (second.id,)
    assert (await scheduler.get_reservation(first.id)).start == at(19)


async def test_reschedule_to_another_table_moves_the_hold(scheduler, add_table, clock):
    first = await add_table(1, 4)
    second = await add_table(2, 2)
    clock.set(18, 50)
    booked = await scheduler.reserve(first.id, "client-1", TimeWindow.of(at(19), 90), 4)
    assert (await scheduler.get_table(first.id)).state is TableState.RESERVED

    too_big = await scheduler.reschedule(booked.id, table_id=second.id)
    assert isinstance(too_big, CapacityExceeded)

    moved = await scheduler.reschedule(booked.id, table_id=second.id, party_size=2, notes="smaller party")

    assert (moved.table_id, moved.party_size, moved.notes) == (second.id, 2, "smaller party")
    assert (await scheduler.get_table(first.id)).state is TableState.FREE
    assert (await scheduler.get_table(second.id)).state is TableState.RESERVED


async def test_reschedule_locks_the_target_table(scheduler, add_table, locks):
    first = await add_table(1, 4)
    second = await add_table(2, 4)
    booked = await scheduler.reserve(first.id, "client-1", TimeWindow.of(at(19), 90), 4)

    async with locks.hold(second.id):
        with pytest.raises(LockTimeout):
            await scheduler.reschedule(booked.id, table_id=second.id)

    assert (await scheduler.get_reservation(booked.id)).table_id == first.id


async def test_reschedule_rejects_finished_seated_and_invalid_bookings(scheduler, add_table, clock):
    table = await add_table(1, 4)
    clock.set(18, 50)
    cancelled = await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(21), 60), 2)
    await scheduler.cancel(cancelled.id)
    seated = await scheduler.reserve(table.id, "client-2", TimeWindow.of(at(19), 60), 2)
    await scheduler.confirm(seated.id)
    await scheduler.seat(seated.id)
    pending = await scheduler.reserve(table.id, "client-3", TimeWindow.of(at(22), 60), 2)

    assert isinstance(await scheduler.reschedule(cancelled.id, start=at(23)), InvalidTransition)
    assert isinstance(await scheduler.reschedule(seated.id, start=at(23)), InvalidTransition)
    assert isinstance(await scheduler.reschedule(pending.id, start=at(18)), ValidationFailed)
    assert isinstance(await scheduler.reschedule(404, start=at(23)), NotFound)


async def test_alternative_times_step_past_existing_booking(scheduler, add_table):
    table = await add_table(1, 4)
    await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 90), 4)

    times = await scheduler.find_alternative_times(table.id, TimeWindow.of(at(19, 30), 60), 2)

    assert [w.start for w in times] == [at(20, 30), at(20, 45), at(21)]
    assert all(w.duration_minutes == 60 for w in times)
    assert isinstance(await scheduler.find_alternative_times(404, TimeWindow.of(at(19), 60), 2), NotFound)


async def test_alternative_times_search_is_bounded(scheduler, add_table):
    table = await add_table(1, 4)
    await scheduler.reserve(table.id, "client-1", TimeWindow.of(at(19), 240), 4)

    assert await scheduler.find_alternative_times(table.id, TimeWindow.of(at(19), 60), 2) == []


async def test_tables_needing_cleaning(scheduler, add_table, clock):
    first = await add_table(1, 4)
    second = await add_table(2, 4)
    never = await add_table(3, 4)
    await scheduler.register_cleaning(first.id)
    clock.set(13)
    await scheduler.register_cleaning(second.id)

    clock.set(16, 30)
    due = await scheduler.list_needing_cleaning()

    assert [t.id for t in due] == [never.id, first.id]
