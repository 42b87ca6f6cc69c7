"""
TableRegistry: canonical table state and the table state machine.

The registry validates and persists transitions; deciding *when* to move a
table belongs to the AvailabilityScheduler, the only caller of the mutating
methods below.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import insert, or_, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.tables import dining_table
from backend.app.domain.models import Table, TableState, can_transition_table
from backend.app.domain.results import InvalidTransition, NotFound, Outcome, ValidationFailed


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime | None) -> datetime | None:
    # SQLite hands timestamps back naive; they were written as UTC.
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _to_table(row: RowMapping) -> Table:
    return Table(
        id=row["id"],
        number=row["number"],
        capacity=row["capacity"],
        location=row["location"],
        state=TableState(row["state"]),
        state_changed_at=as_utc(row["state_changed_at"]),
        last_cleaned_at=as_utc(row["last_cleaned_at"]),
        active=bool(row["active"]),
        current_order_id=row["current_order_id"],
        maintenance_note=row["maintenance_note"],
    )


class TableRegistry:
    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        self._session = session
        self._clock = clock

    async def _fetch(self, table_id: int) -> Table | None:
        result = await self._session.execute(select(dining_table).where(dining_table.c.id == table_id))
        row = result.mappings().one_or_none()
        return _to_table(row) if row is not None else None

    async def _list(self, *criteria) -> list[Table]:
        query = (
            select(dining_table)
            .where(dining_table.c.active.is_(True), *criteria)
            .order_by(dining_table.c.number)
        )
        result = await self._session.execute(query)
        return [_to_table(row) for row in result.mappings()]

    async def get(self, table_id: int) -> Outcome[Table]:
        """Active table by id; soft-disabled tables read as NotFound."""
        table = await self._fetch(table_id)
        if table is None or not table.active:
            return NotFound("table", table_id)
        return table

    async def get_by_number(self, number: int) -> Outcome[Table]:
        result = await self._session.execute(
            select(dining_table).where(dining_table.c.number == number, dining_table.c.active.is_(True))
        )
        row = result.mappings().one_or_none()
        if row is None:
            return NotFound("table number", number)
        return _to_table(row)

    async def list_all(self) -> list[Table]:
        return await self._list()

    async def list_by_state(self, state: TableState) -> list[Table]:
        return await self._list(dining_table.c.state == state.value)

    async def list_by_capacity_range(self, min_capacity: int, max_capacity: int | None = None) -> list[Table]:
        criteria = [dining_table.c.capacity >= min_capacity]
        if max_capacity is not None:
            criteria.append(dining_table.c.capacity <= max_capacity)
        return await self._list(*criteria)

    async def set_state(self, table_id: int, new_state: TableState) -> Outcome[Table]:
        table = await self.get(table_id)
        if isinstance(table, NotFound):
            return table
        if not can_transition_table(table.state, new_state):
            logger.warning(
                "Rejected table transition %s -> %s for table %s",
                table.state.value, new_state.value, table_id,
            )
            return InvalidTransition("table", table_id, table.state.value, new_state.value)

        values: dict = {"state": new_state.value, "state_changed_at": self._clock()}
        if new_state is TableState.FREE:
            values["current_order_id"] = None
            values["maintenance_note"] = None

        # Guarded on the state we validated against
        result = await self._session.execute(
            update(dining_table)
            .where(dining_table.c.id == table_id, dining_table.c.state == table.state.value)
            .values(**values)
        )
        if result.rowcount != 1:
            current = await self._fetch(table_id)
            return InvalidTransition("table", table_id, current.state.value, new_state.value)
        return await self.get(table_id)

    async def register_cleaning(self, table_id: int) -> Outcome[Table]:
        table = await self.get(table_id)
        if isinstance(table, NotFound):
            return table
        await self._session.execute(
            update(dining_table).where(dining_table.c.id == table_id).values(last_cleaned_at=self._clock())
        )
        return await self.get(table_id)

    async def attach_order(self, table_id: int, order_id: str | None) -> Outcome[Table]:
        await self._session.execute(
            update(dining_table).where(dining_table.c.id == table_id).values(current_order_id=order_id)
        )
        return await self.get(table_id)

    async def set_maintenance_note(self, table_id: int, note: str | None) -> Outcome[Table]:
        await self._session.execute(
            update(dining_table).where(dining_table.c.id == table_id).values(maintenance_note=note)
        )
        return await self.get(table_id)

    async def register(self, number: int, capacity: int, location: str | None = None) -> Outcome[Table]:
        """Administrative creation; new tables start Free."""
        errors = []
        if capacity < 1:
            errors.append("capacity must be at least 1")
        existing = await self._session.execute(select(dining_table.c.id).where(dining_table.c.number == number))
        if existing.first() is not None:
            errors.append(f"table number {number} already exists")
        if errors:
            return ValidationFailed(tuple(errors))

        result = await self._session.execute(
            insert(dining_table).values(
                number=number,
                capacity=capacity,
                location=location,
                state=TableState.FREE.value,
                active=True,
                state_changed_at=self._clock(),
            )
        )
        table_id = result.inserted_primary_key[0]
        logger.info("Registered table %s (number %s, capacity %s)", table_id, number, capacity)
        return await self.get(table_id)

    async def disable(self, table_id: int) -> Outcome[Table]:
        """Soft-disable; historical reservations keep pointing at the row."""
        table = await self.get(table_id)
        if isinstance(table, NotFound):
            return table
        await self._session.execute(update(dining_table).where(dining_table.c.id == table_id).values(active=False))
        return replace(table, active=False)

    async def list_needing_cleaning(self, cutoff: datetime) -> list[Table]:
        """Never cleaned, or last cleaned before ``cutoff``; never-cleaned tables first."""
        query = (
            select(dining_table)
            .where(
                dining_table.c.active.is_(True),
                or_(dining_table.c.last_cleaned_at.is_(None), dining_table.c.last_cleaned_at < cutoff),
            )
            .order_by(dining_table.c.last_cleaned_at.asc().nulls_first(), dining_table.c.number)
        )
        result = await self._session.execute(query)
        return [_to_table(row) for row in result.mappings()]
