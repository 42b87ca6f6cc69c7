"""
AvailabilityScheduler: the single mutation path for tables and reservations.

Every inspect-then-commit operation runs inside ``_critical``: the per-table
redis lock is taken first, then one database transaction spans every table
and reservation write. A failure outcome anywhere inside the section aborts
the transaction, so callers never observe half-applied transitions.

Outcomes come back as values (see ``domain.results``). Only infrastructure
errors, such as ``LockTimeout`` or database errors, are raised.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.locks import TableLocks
from backend.app.domain.conflicts import find_conflicts
from backend.app.domain.models import (
    NewReservation,
    Reservation,
    ReservationState,
    Table,
    TableState,
    TimeWindow,
)
from backend.app.domain.policy import SchedulingPolicy
from backend.app.domain.results import (
    CapacityExceeded,
    Conflict,
    InvalidTransition,
    NotFound,
    Outcome,
    ValidationFailed,
    is_failure,
)
from backend.app.domain.validation import validate_booking, validate_party_size, validate_window
from backend.app.services.reservations import ReservationStore
from backend.app.services.tables import Clock, TableRegistry, utc_now


logger = logging.getLogger(__name__)


# Alternative times step forward from the requested start
ALT_STEP_MINUTES = 15
ALT_LOOKAHEAD = 3
MAX_ALT_SEARCH = 8


class _Abort(Exception):
    """Carries a failure outcome out of a critical section, rolling it back."""

    def __init__(self, outcome) -> None:
        super().__init__(outcome)
        self.outcome = outcome


def _unwrap(outcome):
    if is_failure(outcome):
        raise _Abort(outcome)
    return outcome


def _normalize(window: TimeWindow) -> TimeWindow:
    return TimeWindow(window.start.astimezone(timezone.utc), window.end.astimezone(timezone.utc))


def rank_candidates(
    candidates: Sequence[Table],
    party_size: int,
    location: str | None = None,
) -> list[Table]:
    """Tables that seat the party, fewest wasted seats first, then lowest number.

    With a location preference, matching tables rank ahead of the rest.
    """
    wanted = location.casefold() if location else None

    def key(table: Table) -> tuple[int, int, int]:
        miss = 0 if wanted is None or (table.location or "").casefold() == wanted else 1
        return (miss, table.capacity - party_size, table.number)

    return sorted((t for t in candidates if t.capacity >= party_size), key=key)


def best_fit(candidates: Sequence[Table], party_size: int, location: str | None = None) -> Table | None:
    ranked = rank_candidates(candidates, party_size, location)
    return ranked[0] if ranked else None


@dataclass(frozen=True)
class Assignment:
    table: Table
    alternatives: list[Table] = field(default_factory=list)


class AvailabilityScheduler:
    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        locks: TableLocks,
        policy: SchedulingPolicy | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._sessions = sessions
        self._locks = locks
        self._policy = policy or SchedulingPolicy()
        self._clock = clock

    @property
    def policy(self) -> SchedulingPolicy:
        return self._policy

    def reconfigure(self, policy: SchedulingPolicy) -> None:
        logger.info("Scheduling policy replaced: %s", policy)
        self._policy = policy

    def now(self) -> datetime:
        return self._clock()

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[tuple[TableRegistry, ReservationStore]]:
        async with self._sessions() as session:
            yield TableRegistry(session, self._clock), ReservationStore(session, self._clock)

    @asynccontextmanager
    async def _critical(
        self, *table_ids: int, blocking: bool = True
    ) -> AsyncIterator[tuple[TableRegistry, ReservationStore]]:
        async with AsyncExitStack() as stack:
            # Ascending order, so two multi-table sections cannot deadlock
            for table_id in sorted(set(table_ids)):
                await stack.enter_async_context(self._locks.hold(table_id, blocking=blocking))
            async with self._sessions() as session, session.begin():
                yield TableRegistry(session, self._clock), ReservationStore(session, self._clock)

    @staticmethod
    def _report(operation: str, outcome):
        if isinstance(outcome, InvalidTransition):
            logger.warning("%s rejected: %s", operation, outcome.message)
        elif isinstance(outcome, Conflict):
            logger.info("%s conflict: %s (overlaps %s)", operation, outcome.message, list(outcome.conflicting_ids))
        else:
            logger.info("%s failed: %s", operation, outcome.message)
        return outcome

    async def _table_of(self, reservation_id: int) -> Outcome[int]:
        async with self._read() as (_, reservations):
            found = await reservations.get(reservation_id)
        if isinstance(found, NotFound):
            return found
        return found.table_id

    async def get_table(self, table_id: int) -> Outcome[Table]:
        async with self._read() as (tables, _):
            return await tables.get(table_id)

    async def list_tables(
        self,
        state: TableState | None = None,
        min_capacity: int | None = None,
        max_capacity: int | None = None,
    ) -> list[Table]:
        async with self._read() as (tables, _):
            if min_capacity is None and max_capacity is None:
                return await (tables.list_by_state(state) if state is not None else tables.list_all())
            found = await tables.list_by_capacity_range(min_capacity or 1, max_capacity)
        return [t for t in found if state is None or t.state is state]

    async def get_reservation(self, reservation_id: int) -> Outcome[Reservation]:
        async with self._read() as (_, reservations):
            return await reservations.get(reservation_id)

    async def list_reservations_for_table(
        self, table_id: int, window: TimeWindow | None = None
    ) -> Outcome[list[Reservation]]:
        async with self._read() as (tables, reservations):
            table = await tables.get(table_id)
            if isinstance(table, NotFound):
                return table
            return await reservations.list_by_table(table_id, _normalize(window) if window else None)

    async def list_upcoming(self, within_minutes: int) -> list[Reservation]:
        async with self._read() as (_, reservations):
            return await reservations.list_upcoming(within_minutes)

    async def list_overdue(self) -> list[Reservation]:
        async with self._read() as (_, reservations):
            return await reservations.list_overdue(self._policy.no_show_grace)

    async def find_available_tables(
        self,
        window: TimeWindow,
        party_size: int,
        location: str | None = None,
    ) -> Outcome[list[Table]]:
        """Tables seating the party with no active reservation overlapping ``window``.

        Read-only; repeated calls with no mutation in between return the same list.
        """
        errors = validate_party_size(party_size) + validate_window(window)
        if errors:
            return ValidationFailed(tuple(errors))
        window = _normalize(window)
        wanted = location.casefold() if location else None

        available: list[Table] = []
        async with self._read() as (tables, reservations):
            for table in await tables.list_by_capacity_range(party_size):
                if table.state is TableState.MAINTENANCE:
                    continue
                if wanted is not None and (table.location or "").casefold() != wanted:
                    continue
                if find_conflicts(window, await reservations.list_active_by_table(table.id)):
                    continue
                available.append(table)
        return available

    async def find_alternative_times(
        self,
        table_id: int,
        window: TimeWindow,
        party_size: int,
        *,
        limit: int = ALT_LOOKAHEAD,
    ) -> Outcome[list[TimeWindow]]:
        """Later windows of the same length on the same table, stepping forward from ``window``."""
        errors = validate_party_size(party_size) + validate_window(window)
        if errors:
            return ValidationFailed(tuple(errors))
        window = _normalize(window)
        now = self._clock()

        async with self._read() as (tables, reservations):
            table = await tables.get(table_id)
            if isinstance(table, NotFound):
                return table
            active = await reservations.list_active_by_table(table_id)

        found: list[TimeWindow] = []
        step = timedelta(minutes=ALT_STEP_MINUTES)
        cursor = window
        checked = 0
        while len(found) < limit and checked < MAX_ALT_SEARCH:
            cursor = TimeWindow(cursor.start + step, cursor.end + step)
            checked += 1
            if validate_booking(cursor, party_size, self._policy, now):
                continue
            if not find_conflicts(cursor, active):
                found.append(cursor)
        return found

    async def list_needing_cleaning(self) -> list[Table]:
        cutoff = self._clock() - self._policy.cleaning_interval
        async with self._read() as (tables, _):
            return await tables.list_needing_cleaning(cutoff)

    best_fit = staticmethod(best_fit)

    async def reserve(
        self,
        table_id: int,
        client_id: str,
        window: TimeWindow,
        party_size: int,
        notes: str | None = None,
    ) -> Outcome[Reservation]:
        """Book ``window`` on a table, re-checking capacity and overlap under the table lock."""
        now = self._clock()
        errors = validate_booking(window, party_size, self._policy, now)
        if errors:
            return self._report("reserve", ValidationFailed(tuple(errors)))
        window = _normalize(window)

        try:
            async with self._critical(table_id) as (tables, reservations):
                table = _unwrap(await tables.get(table_id))
                if table.state is TableState.MAINTENANCE:
                    raise _Abort(InvalidTransition("table", table_id, table.state.value, TableState.RESERVED.value))
                if party_size > table.capacity:
                    raise _Abort(CapacityExceeded(table_id, party_size, table.capacity))

                clashes = find_conflicts(window, await reservations.list_active_by_table(table_id))
                if clashes:
                    raise _Abort(Conflict(table_id, window, tuple(r.id for r in clashes)))

                created = await reservations.create(
                    NewReservation(table_id=table_id, client_id=client_id, party_size=party_size,
                                   window=window, notes=notes)
                )
                if table.state is TableState.FREE and window.start <= now + self._policy.immediate_effect:
                    _unwrap(await tables.set_state(table_id, TableState.RESERVED))
                return created
        except _Abort as abort:
            return self._report("reserve", abort.outcome)

    async def confirm(self, reservation_id: int) -> Outcome[Reservation]:
        """Pending -> Confirmed. Does not seat."""
        table_id = await self._table_of(reservation_id)
        if is_failure(table_id):
            return self._report("confirm", table_id)

        try:
            async with self._critical(table_id) as (_, reservations):
                current = _unwrap(await reservations.get(reservation_id))
                if current.state is ReservationState.PENDING and current.end <= self._clock():
                    raise _Abort(ValidationFailed(("window has already elapsed",)))
                confirmed = _unwrap(await reservations.update_state(reservation_id, ReservationState.CONFIRMED))
                logger.info("Confirmed reservation %s", reservation_id)
                return confirmed
        except _Abort as abort:
            return self._report("confirm", abort.outcome)

    async def _seat(self, tables: TableRegistry, reservations: ReservationStore, booking: Reservation) -> Reservation:
        if booking.state is not ReservationState.CONFIRMED:
            raise _Abort(InvalidTransition("reservation", booking.id, booking.state.value, "seated"))
        table = _unwrap(await tables.get(booking.table_id))
        if table.state not in (TableState.FREE, TableState.RESERVED):
            raise _Abort(InvalidTransition("table", table.id, table.state.value, TableState.OCCUPIED.value))
        if booking.party_size > table.capacity:
            raise _Abort(CapacityExceeded(table.id, booking.party_size, table.capacity))
        _unwrap(await tables.set_state(table.id, TableState.OCCUPIED))
        seated = _unwrap(await reservations.mark_seated(booking.id))
        logger.info("Seated reservation %s at table %s", booking.id, table.id)
        return seated

    async def seat(self, reservation_id: int) -> Outcome[Reservation]:
        """Check-in: a Confirmed reservation takes its table (Free/Reserved -> Occupied)."""
        table_id = await self._table_of(reservation_id)
        if is_failure(table_id):
            return self._report("seat", table_id)

        try:
            async with self._critical(table_id) as (tables, reservations):
                booking = _unwrap(await reservations.get(reservation_id))
                return await self._seat(tables, reservations, booking)
        except _Abort as abort:
            return self._report("seat", abort.outcome)

    async def _release_hold(self, tables: TableRegistry, reservations: ReservationStore, table_id: int) -> None:
        """Reserved -> Free once no active booking is current or inside the immediate-effect horizon."""
        table = await tables.get(table_id)
        if not isinstance(table, Table) or table.state is not TableState.RESERVED:
            return
        now = self._clock()
        horizon = now + self._policy.immediate_effect
        still_held = [
            r for r in await reservations.list_active_by_table(table_id)
            if r.start <= horizon and r.end > now
        ]
        if not still_held:
            _unwrap(await tables.set_state(table_id, TableState.FREE))

    async def _cancel(
        self,
        tables: TableRegistry,
        reservations: ReservationStore,
        reservation_id: int,
        reason: str | None,
    ) -> Reservation:
        cancelled = _unwrap(
            await reservations.update_state(reservation_id, ReservationState.CANCELLED, reason=reason)
        )
        await self._release_hold(tables, reservations, cancelled.table_id)
        logger.info("Cancelled reservation %s (%s)", reservation_id, reason or "no reason given")
        return cancelled

    async def cancel(
        self,
        reservation_id: int,
        reason: str | None = None,
        *,
        blocking: bool = True,
    ) -> Outcome[Reservation]:
        """Any non-terminal reservation -> Cancelled; frees a table held only for it."""
        table_id = await self._table_of(reservation_id)
        if is_failure(table_id):
            return self._report("cancel", table_id)

        try:
            async with self._critical(table_id, blocking=blocking) as (tables, reservations):
                return await self._cancel(tables, reservations, reservation_id, reason)
        except _Abort as abort:
            return self._report("cancel", abort.outcome)

    async def reschedule(
        self,
        reservation_id: int,
        *,
        table_id: int | None = None,
        start: datetime | None = None,
        duration_minutes: int | None = None,
        party_size: int | None = None,
        notes: str | None = None,
    ) -> Outcome[Reservation]:
        """Move an active, unseated booking, re-running every reserve check against its new shape.

        Fields left as None keep their current value. Both the old and the target
        table are locked, and the booking never conflicts with itself.
        """
        current_table = await self._table_of(reservation_id)
        if is_failure(current_table):
            return self._report("reschedule", current_table)
        target_table = table_id if table_id is not None else current_table

        try:
            async with self._critical(current_table, target_table) as (tables, reservations):
                booking = _unwrap(await reservations.get(reservation_id))
                if not booking.is_active or booking.seated_at is not None or booking.table_id != current_table:
                    raise _Abort(InvalidTransition("reservation", reservation_id, booking.state.value, "rescheduled"))

                now = self._clock()
                window = TimeWindow.of(start or booking.start, duration_minutes or booking.duration_minutes)
                party = party_size if party_size is not None else booking.party_size
                errors = validate_booking(window, party, self._policy, now)
                if errors:
                    raise _Abort(ValidationFailed(tuple(errors)))
                window = _normalize(window)

                table = _unwrap(await tables.get(target_table))
                if table.state is TableState.MAINTENANCE:
                    raise _Abort(InvalidTransition("table", table.id, table.state.value, TableState.RESERVED.value))
                if party > table.capacity:
                    raise _Abort(CapacityExceeded(table.id, party, table.capacity))
                clashes = find_conflicts(
                    window, await reservations.list_active_by_table(table.id), exclude_id=reservation_id
                )
                if clashes:
                    raise _Abort(Conflict(table.id, window, tuple(r.id for r in clashes)))

                moved = _unwrap(await reservations.update_booking(
                    reservation_id,
                    table_id=table.id,
                    window=window,
                    party_size=party,
                    notes=notes if notes is not None else booking.notes,
                ))
                await self._release_hold(tables, reservations, current_table)
                table = _unwrap(await tables.get(table.id))
                if table.state is TableState.FREE and window.start <= now + self._policy.immediate_effect:
                    _unwrap(await tables.set_state(table.id, TableState.RESERVED))
                logger.info(
                    "Rescheduled reservation %s to table %s at %s", reservation_id, table.id, window.start.isoformat()
                )
                return moved
        except _Abort as abort:
            return self._report("reschedule", abort.outcome)

    async def _release(self, tables: TableRegistry, reservations: ReservationStore, table: Table) -> Table:
        if table.state is not TableState.OCCUPIED:
            raise _Abort(InvalidTransition("table", table.id, table.state.value, TableState.FREE.value))
        freed = _unwrap(await tables.set_state(table.id, TableState.FREE))

        now = self._clock()
        for booking in await reservations.list_active_by_table(table.id):
            if booking.state is ReservationState.CONFIRMED and (booking.seated_at is not None or booking.end <= now):
                _unwrap(await reservations.update_state(booking.id, ReservationState.COMPLETED))
                logger.info("Completed reservation %s on release of table %s", booking.id, table.id)
        logger.info("Released table %s", table.id)
        return freed

    async def release(self, table_id: int, *, blocking: bool = True) -> Outcome[Table]:
        """Occupied -> Free, completing the reservation that was using the table."""
        try:
            async with self._critical(table_id, blocking=blocking) as (tables, reservations):
                table = _unwrap(await tables.get(table_id))
                return await self._release(tables, reservations, table)
        except _Abort as abort:
            return self._report("release", abort.outcome)

    async def set_maintenance(self, table_id: int, note: str | None = None) -> Outcome[Table]:
        """Free -> Maintenance."""
        try:
            async with self._critical(table_id) as (tables, _):
                _unwrap(await tables.set_state(table_id, TableState.MAINTENANCE))
                table = _unwrap(await tables.set_maintenance_note(table_id, note))
                logger.info("Table %s in maintenance: %s", table_id, note or "-")
                return table
        except _Abort as abort:
            return self._report("set_maintenance", abort.outcome)

    async def clear_maintenance(self, table_id: int) -> Outcome[Table]:
        """Maintenance -> Free."""
        try:
            async with self._critical(table_id) as (tables, _):
                table = _unwrap(await tables.get(table_id))
                if table.state is not TableState.MAINTENANCE:
                    raise _Abort(InvalidTransition("table", table_id, table.state.value, TableState.FREE.value))
                return _unwrap(await tables.set_state(table_id, TableState.FREE))
        except _Abort as abort:
            return self._report("clear_maintenance", abort.outcome)

    async def register_cleaning(self, table_id: int) -> Outcome[Table]:
        try:
            async with self._critical(table_id) as (tables, _):
                return _unwrap(await tables.register_cleaning(table_id))
        except _Abort as abort:
            return self._report("register_cleaning", abort.outcome)

    async def _occupy_walk_in(
        self,
        tables: TableRegistry,
        reservations: ReservationStore,
        table: Table,
        party_size: int | None,
        duration_minutes: int,
    ) -> Table:
        if table.state is not TableState.FREE:
            raise _Abort(InvalidTransition("table", table.id, table.state.value, TableState.OCCUPIED.value))
        if party_size is not None and party_size > table.capacity:
            raise _Abort(CapacityExceeded(table.id, party_size, table.capacity))
        window = TimeWindow.of(self._clock(), duration_minutes)
        clashes = find_conflicts(window, await reservations.list_active_by_table(table.id))
        if clashes:
            raise _Abort(Conflict(table.id, window, tuple(r.id for r in clashes)))
        occupied = _unwrap(await tables.set_state(table.id, TableState.OCCUPIED))
        logger.info("Walk-in seated at table %s until about %s", table.id, window.end.isoformat())
        return occupied

    async def seat_walk_in(
        self,
        table_id: int,
        party_size: int,
        duration_minutes: int | None = None,
        order_id: str | None = None,
    ) -> Outcome[Table]:
        """Free -> Occupied for a party without a booking, if no reservation claims the next stretch."""
        duration = duration_minutes or self._policy.walk_in_minutes
        errors = validate_party_size(party_size)
        if duration < 1:
            errors.append("duration must be positive")
        if errors:
            return self._report("seat_walk_in", ValidationFailed(tuple(errors)))

        try:
            async with self._critical(table_id) as (tables, reservations):
                table = _unwrap(await tables.get(table_id))
                occupied = await self._occupy_walk_in(tables, reservations, table, party_size, duration)
                if order_id is not None:
                    occupied = _unwrap(await tables.attach_order(table_id, order_id))
                return occupied
        except _Abort as abort:
            return self._report("seat_walk_in", abort.outcome)

    async def open_order(self, table_id: int, order_id: str) -> Outcome[Table]:
        """An order was opened against the table; occupy it if nobody is seated yet."""
        try:
            async with self._critical(table_id) as (tables, reservations):
                table = _unwrap(await tables.get(table_id))
                if table.state is TableState.FREE:
                    await self._occupy_walk_in(tables, reservations, table, None, self._policy.walk_in_minutes)
                elif table.state is TableState.RESERVED:
                    now = self._clock()
                    horizon = now + self._policy.immediate_effect
                    arriving = [
                        r for r in await reservations.list_active_by_table(table_id)
                        if r.state is ReservationState.CONFIRMED and r.start <= horizon and r.end > now
                    ]
                    if not arriving:
                        raise _Abort(InvalidTransition("table", table_id, table.state.value, TableState.OCCUPIED.value))
                    await self._seat(tables, reservations, arriving[0])
                elif table.state is TableState.MAINTENANCE:
                    raise _Abort(InvalidTransition("table", table_id, table.state.value, TableState.OCCUPIED.value))
                logger.info("Order %s opened at table %s", order_id, table_id)
                return _unwrap(await tables.attach_order(table_id, order_id))
        except _Abort as abort:
            return self._report("open_order", abort.outcome)

    async def close_order(self, table_id: int, order_id: str) -> Outcome[Table]:
        """The order closed; release the table unless a different order now holds it."""
        try:
            async with self._critical(table_id) as (tables, reservations):
                table = _unwrap(await tables.get(table_id))
                if table.current_order_id not in (None, order_id):
                    logger.info("Order %s closed but table %s is held by order %s", order_id, table_id,
                                table.current_order_id)
                    return table
                return await self._release(tables, reservations, table)
        except _Abort as abort:
            return self._report("close_order", abort.outcome)

    async def auto_assign(self, party_size: int, location: str | None = None) -> Outcome[Assignment]:
        """Seat a walk-in party at the best free table, preferring ``location`` when given."""
        errors = validate_party_size(party_size)
        if errors:
            return self._report("auto_assign", ValidationFailed(tuple(errors)))

        window = TimeWindow.of(self._clock(), self._policy.walk_in_minutes)
        candidates = await self.find_available_tables(window, party_size)
        if is_failure(candidates):
            return self._report("auto_assign", candidates)
        ranked = rank_candidates([t for t in candidates if t.state is TableState.FREE], party_size, location)

        for index, table in enumerate(ranked):
            seated = await self.seat_walk_in(table.id, party_size, self._policy.walk_in_minutes)
            if isinstance(seated, Table):
                return Assignment(table=seated, alternatives=(ranked[:index] + ranked[index + 1:])[:3])

        if not await self.list_tables(min_capacity=party_size):
            largest = max((t.capacity for t in await self.list_tables()), default=0)
            return self._report("auto_assign", CapacityExceeded(None, party_size, largest))
        return self._report("auto_assign", Conflict(None, window))

    async def reclaim_idle(self, table_id: int, *, blocking: bool = False) -> Outcome[Table | None]:
        """Release the table if it is still Occupied past the limit with no order attached.

        Returns None when the table no longer qualifies.
        """
        try:
            async with self._critical(table_id, blocking=blocking) as (tables, reservations):
                table = _unwrap(await tables.get(table_id))
                cutoff = self._clock() - self._policy.max_occupancy
                if (
                    table.state is not TableState.OCCUPIED
                    or table.current_order_id is not None
                    or table.state_changed_at > cutoff
                ):
                    return None
                logger.info("Reclaiming table %s, occupied since %s", table_id, table.state_changed_at.isoformat())
                return await self._release(tables, reservations, table)
        except _Abort as abort:
            return self._report("reclaim_idle", abort.outcome)

    async def reclaim_no_show(self, reservation_id: int, *, blocking: bool = False) -> Outcome[Reservation | None]:
        """Cancel a reservation nobody checked in for: Confirmed ones as no-shows, Pending ones as expired."""
        table_id = await self._table_of(reservation_id)
        if is_failure(table_id):
            return self._report("reclaim_no_show", table_id)

        try:
            async with self._critical(table_id, blocking=blocking) as (tables, reservations):
                booking = _unwrap(await reservations.get(reservation_id))
                cutoff = self._clock() - self._policy.no_show_grace
                if not booking.is_active or booking.seated_at is not None or booking.start >= cutoff:
                    return None
                reason = "no-show" if booking.state is ReservationState.CONFIRMED else "expired"
                return await self._cancel(tables, reservations, reservation_id, reason)
        except _Abort as abort:
            return self._report("reclaim_no_show", abort.outcome)

    async def hold_for_arrival(self, reservation_id: int, *, blocking: bool = False) -> Outcome[Table | None]:
        """Flip a Free table to Reserved once its next booking enters the immediate-effect horizon."""
        table_id = await self._table_of(reservation_id)
        if is_failure(table_id):
            return self._report("hold_for_arrival", table_id)

        try:
            async with self._critical(table_id, blocking=blocking) as (tables, reservations):
                booking = _unwrap(await reservations.get(reservation_id))
                table = _unwrap(await tables.get(table_id))
                now = self._clock()
                if (
                    not booking.is_active
                    or table.state is not TableState.FREE
                    or booking.start > now + self._policy.immediate_effect
                    or booking.end <= now
                ):
                    return None
                held = _unwrap(await tables.set_state(table_id, TableState.RESERVED))
                logger.info("Table %s held for reservation %s at %s", table_id, reservation_id,
                            booking.start.isoformat())
                return held
        except _Abort as abort:
            return self._report("hold_for_arrival", abort.outcome)
