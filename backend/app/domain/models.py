"""
Records and state machines for tables and reservations.

Records are immutable snapshots returned by the stores. Nothing here loads
related rows; callers ask the stores explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


class TableState(str, Enum):
    FREE = "free"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"


class ReservationState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TABLE_TRANSITIONS: dict[TableState, frozenset[TableState]] = {
    TableState.FREE: frozenset({TableState.OCCUPIED, TableState.RESERVED, TableState.MAINTENANCE}),
    TableState.OCCUPIED: frozenset({TableState.FREE}),
    TableState.RESERVED: frozenset({TableState.OCCUPIED, TableState.FREE}),
    TableState.MAINTENANCE: frozenset({TableState.FREE}),
}

# Pending -> Cancelled also covers expiry; the reason column tells them apart.
RESERVATION_TRANSITIONS: dict[ReservationState, frozenset[ReservationState]] = {
    ReservationState.PENDING: frozenset({ReservationState.CONFIRMED, ReservationState.CANCELLED}),
    ReservationState.CONFIRMED: frozenset({ReservationState.COMPLETED, ReservationState.CANCELLED}),
    ReservationState.COMPLETED: frozenset(),
    ReservationState.CANCELLED: frozenset(),
}

ACTIVE_RESERVATION_STATES = (ReservationState.PENDING, ReservationState.CONFIRMED)


def can_transition_table(current: TableState, target: TableState) -> bool:
    return target in TABLE_TRANSITIONS[current]


def can_transition_reservation(current: ReservationState, target: ReservationState) -> bool:
    return target in RESERVATION_TRANSITIONS[current]


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    @classmethod
    def of(cls, start: datetime, duration_minutes: int) -> TimeWindow:
        return cls(start=start, end=start + timedelta(minutes=duration_minutes))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)


@dataclass(frozen=True)
class Table:
    id: int
    number: int
    capacity: int
    location: str | None
    state: TableState
    state_changed_at: datetime
    last_cleaned_at: datetime | None = None
    active: bool = True
    current_order_id: str | None = None
    maintenance_note: str | None = None


@dataclass(frozen=True)
class Reservation:
    id: int
    table_id: int
    client_id: str
    party_size: int
    start: datetime
    duration_minutes: int
    state: ReservationState
    created_at: datetime
    notes: str | None = None
    cancel_reason: str | None = None
    seated_at: datetime | None = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(self.start, self.end)

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_RESERVATION_STATES


@dataclass(frozen=True)
class NewReservation:
    """What a caller supplies; the store assigns id, state and creation time."""

    table_id: int
    client_id: str
    party_size: int
    window: TimeWindow
    notes: str | None = None
