"""
ReservationStore: reservation records and their time-indexed queries.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import insert, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.tables import reservation
from backend.app.domain.models import (
    ACTIVE_RESERVATION_STATES,
    NewReservation,
    Reservation,
    ReservationState,
    TimeWindow,
    can_transition_reservation,
)
from backend.app.domain.results import InvalidTransition, NotFound, Outcome
from backend.app.services.tables import Clock, as_utc, utc_now


logger = logging.getLogger(__name__)

_ACTIVE = [state.value for state in ACTIVE_RESERVATION_STATES]


def _to_reservation(row: RowMapping) -> Reservation:
    return Reservation(
        id=row["id"],
        table_id=row["table_id"],
        client_id=row["client_id"],
        party_size=row["party_size"],
        start=as_utc(row["start_ts"]),
        duration_minutes=row["duration_minutes"],
        state=ReservationState(row["state"]),
        created_at=as_utc(row["created_at"]),
        notes=row["notes"],
        cancel_reason=row["cancel_reason"],
        seated_at=as_utc(row["seated_at"]),
    )


class ReservationStore:
    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        self._session = session
        self._clock = clock

    async def _select(self, *criteria) -> list[Reservation]:
        query = select(reservation).where(*criteria).order_by(reservation.c.start_ts, reservation.c.id)
        result = await self._session.execute(query)
        return [_to_reservation(row) for row in result.mappings()]

    async def create(self, new: NewReservation) -> Reservation:
        """Insert as Pending; the id and creation timestamp are assigned here."""
        result = await self._session.execute(
            insert(reservation).values(
                table_id=new.table_id,
                client_id=new.client_id,
                party_size=new.party_size,
                start_ts=new.window.start,
                end_ts=new.window.end,
                duration_minutes=new.window.duration_minutes,
                state=ReservationState.PENDING.value,
                notes=new.notes,
                created_at=self._clock(),
            )
        )
        reservation_id = result.inserted_primary_key[0]
        logger.info(
            "Created reservation %s on table %s for %s [%s, %s)",
            reservation_id, new.table_id, new.party_size,
            new.window.start.isoformat(), new.window.end.isoformat(),
        )
        return await self.get(reservation_id)

    async def get(self, reservation_id: int) -> Outcome[Reservation]:
        rows = await self._select(reservation.c.id == reservation_id)
        if not rows:
            return NotFound("reservation", reservation_id)
        return rows[0]

    async def list_by_table(self, table_id: int, window: TimeWindow | None = None) -> list[Reservation]:
        """Every reservation on the table, optionally only those overlapping ``window``."""
        criteria = [reservation.c.table_id == table_id]
        if window is not None:
            criteria += [reservation.c.start_ts < window.end, reservation.c.end_ts > window.start]
        return await self._select(*criteria)

    async def list_active_by_table(self, table_id: int) -> list[Reservation]:
        """Pending or Confirmed, soonest first."""
        return await self._select(reservation.c.table_id == table_id, reservation.c.state.in_(_ACTIVE))

    async def list_upcoming(self, within_minutes: int) -> list[Reservation]:
        """Active reservations starting between now and now + within_minutes."""
        now = self._clock()
        return await self._select(
            reservation.c.state.in_(_ACTIVE),
            reservation.c.start_ts >= now,
            reservation.c.start_ts <= now + timedelta(minutes=within_minutes),
        )

    async def list_overdue(self, grace: timedelta) -> list[Reservation]:
        """Active, never seated, and started more than ``grace`` ago."""
        return await self._select(
            reservation.c.state.in_(_ACTIVE),
            reservation.c.seated_at.is_(None),
            reservation.c.start_ts < self._clock() - grace,
        )

    async def update_state(
        self,
        reservation_id: int,
        new_state: ReservationState,
        *,
        reason: str | None = None,
    ) -> Outcome[Reservation]:
        current = await self.get(reservation_id)
        if isinstance(current, NotFound):
            return current
        if not can_transition_reservation(current.state, new_state):
            logger.warning(
                "Rejected reservation transition %s -> %s for reservation %s",
                current.state.value, new_state.value, reservation_id,
            )
            return InvalidTransition("reservation", reservation_id, current.state.value, new_state.value)

        values: dict = {"state": new_state.value}
        if new_state is ReservationState.CANCELLED:
            values["cancel_reason"] = reason
        result = await self._session.execute(
            update(reservation)
            .where(reservation.c.id == reservation_id, reservation.c.state == current.state.value)
            .values(**values)
        )
        if result.rowcount != 1:
            latest = await self.get(reservation_id)
            return InvalidTransition("reservation", reservation_id, latest.state.value, new_state.value)
        return await self.get(reservation_id)

    async def mark_seated(self, reservation_id: int) -> Outcome[Reservation]:
        await self._session.execute(
            update(reservation).where(reservation.c.id == reservation_id).values(seated_at=self._clock())
        )
        return await self.get(reservation_id)

    async def update_booking(
        self,
        reservation_id: int,
        *,
        table_id: int,
        window: TimeWindow,
        party_size: int,
        notes: str | None,
    ) -> Outcome[Reservation]:
        """Move an active, unseated booking to another table, window or party size."""
        result = await self._session.execute(
            update(reservation)
            .where(
                reservation.c.id == reservation_id,
                reservation.c.state.in_(_ACTIVE),
                reservation.c.seated_at.is_(None),
            )
            .values(
                table_id=table_id,
                start_ts=window.start,
                end_ts=window.end,
                duration_minutes=window.duration_minutes,
                party_size=party_size,
                notes=notes,
            )
        )
        current = await self.get(reservation_id)
        if result.rowcount != 1 and not isinstance(current, NotFound):
            return InvalidTransition("reservation", reservation_id, current.state.value, "rescheduled")
        return current
