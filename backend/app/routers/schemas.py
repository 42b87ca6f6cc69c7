from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from backend.app.domain.models import Reservation, ReservationState, Table, TableState
from backend.app.services.occupancy import OccupancyStats, RotationAlert


class TableOut(BaseModel):
    id: int
    number: int
    capacity: int
    location: str | None
    state: TableState
    state_changed_at: datetime
    last_cleaned_at: datetime | None
    current_order_id: str | None
    maintenance_note: str | None

    @classmethod
    def from_record(cls, table: Table) -> TableOut:
        return cls(
            id=table.id,
            number=table.number,
            capacity=table.capacity,
            location=table.location,
            state=table.state,
            state_changed_at=table.state_changed_at,
            last_cleaned_at=table.last_cleaned_at,
            current_order_id=table.current_order_id,
            maintenance_note=table.maintenance_note,
        )


class ReservationOut(BaseModel):
    id: int
    table_id: int
    client_id: str
    party_size: int
    start_ts: datetime
    end_ts: datetime
    duration_minutes: int
    state: ReservationState
    created_at: datetime
    notes: str | None
    cancel_reason: str | None
    seated_at: datetime | None

    @classmethod
    def from_record(cls, booking: Reservation) -> ReservationOut:
        return cls(
            id=booking.id,
            table_id=booking.table_id,
            client_id=booking.client_id,
            party_size=booking.party_size,
            start_ts=booking.start,
            end_ts=booking.end,
            duration_minutes=booking.duration_minutes,
            state=booking.state,
            created_at=booking.created_at,
            notes=booking.notes,
            cancel_reason=booking.cancel_reason,
            seated_at=booking.seated_at,
        )


class ReserveIn(BaseModel):
    table_id: int
    client_id: str = Field(min_length=1, max_length=64)
    party_size: int = Field(ge=1, le=50)
    # ISO 8601 with offset, e.g. "2025-11-05T19:00:00-05:00"
    start_ts: datetime
    duration_minutes: int = Field(ge=1, le=1440)
    notes: str | None = Field(default=None, max_length=1024)


class CancelIn(BaseModel):
    reason: str | None = Field(default=None, max_length=200)


class AvailabilitySearchIn(BaseModel):
    party_size: int = Field(ge=1, le=50)
    start_ts: datetime
    duration_minutes: int = Field(ge=1, le=1440)
    location: str | None = Field(default=None, max_length=100)


class AvailabilitySearchOut(BaseModel):
    tables: list[TableOut]
    best_fit: TableOut | None


class AssignIn(BaseModel):
    party_size: int = Field(ge=1, le=50)
    location: str | None = Field(default=None, max_length=100)


class AssignOut(BaseModel):
    table: TableOut
    alternatives: list[TableOut]


class WalkInIn(BaseModel):
    party_size: int = Field(ge=1, le=50)
    duration_minutes: int | None = Field(default=None, ge=1, le=1440)
    order_id: str | None = Field(default=None, max_length=64)


class MaintenanceIn(BaseModel):
    note: str | None = Field(default=None, max_length=1024)


class OccupancyOut(BaseModel):
    total_tables: int
    free: int
    occupied: int
    reserved: int
    maintenance: int
    occupancy_percent: float
    total_capacity: int
    seated_capacity: int

    @classmethod
    def from_stats(cls, stats: OccupancyStats) -> OccupancyOut:
        return cls(**stats.__dict__)


class RotationAlertOut(BaseModel):
    table: TableOut
    occupied_minutes: int
    urgency: str

    @classmethod
    def from_alert(cls, alert: RotationAlert) -> RotationAlertOut:
        return cls(
            table=TableOut.from_record(alert.table),
            occupied_minutes=int(alert.occupied_for.total_seconds() // 60),
            urgency=alert.urgency,
        )


class RescheduleIn(BaseModel):
    """Fields left out keep their current value."""

    table_id: int | None = None
    party_size: int | None = Field(default=None, ge=1, le=50)
    start_ts: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=1, le=1440)
    notes: str | None = Field(default=None, max_length=1024)
