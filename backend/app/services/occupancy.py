"""Floor summaries built from table snapshots."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from backend.app.domain.models import Table, TableState


@dataclass(frozen=True)
class OccupancyStats:
    total_tables: int
    free: int
    occupied: int
    reserved: int
    maintenance: int
    occupancy_percent: float
    total_capacity: int
    seated_capacity: int


@dataclass(frozen=True)
class RotationAlert:
    table: Table
    occupied_for: timedelta
    urgency: str


def occupancy_stats(tables: Sequence[Table]) -> OccupancyStats:
    counts = {state: 0 for state in TableState}
    for table in tables:
        counts[table.state] += 1
    total = len(tables)
    occupied = counts[TableState.OCCUPIED]
    return OccupancyStats(
        total_tables=total,
        free=counts[TableState.FREE],
        occupied=occupied,
        reserved=counts[TableState.RESERVED],
        maintenance=counts[TableState.MAINTENANCE],
        occupancy_percent=round(occupied / total * 100, 2) if total else 0.0,
        total_capacity=sum(t.capacity for t in tables),
        seated_capacity=sum(t.capacity for t in tables if t.state is TableState.OCCUPIED),
    )


def rotation_report(tables: Sequence[Table], now: datetime, threshold_minutes: int) -> list[RotationAlert]:
    """Occupied tables past the threshold, longest first; ``high`` beyond 1.5x the threshold."""
    threshold = timedelta(minutes=threshold_minutes)
    alerts = []
    for table in tables:
        if table.state is not TableState.OCCUPIED:
            continue
        occupied_for = now - table.state_changed_at
        if occupied_for <= threshold:
            continue
        urgency = "high" if occupied_for > threshold * 1.5 else "medium"
        alerts.append(RotationAlert(table=table, occupied_for=occupied_for, urgency=urgency))
    return sorted(alerts, key=lambda alert: alert.occupied_for, reverse=True)
