"""
IdleReclaimer: periodic sweep that brings table state back in line with the room.

Three passes, each routed through the AvailabilityScheduler:

1. Occupied tables past the max-occupancy limit with no order attached are released.
2. Reservations nobody checked in for within the grace period are cancelled
   (``no-show`` when Confirmed, ``expired`` when still Pending).
3. Free tables whose next booking is about to start are flipped to Reserved.

Locks are taken without waiting; a table busy with a user request is skipped
and picked up on the next run. A failure on one table is logged and the sweep
moves on.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field

from backend.app.core.locks import LockTimeout
from backend.app.domain.models import TableState
from backend.app.domain.results import is_failure
from backend.app.services.scheduler import AvailabilityScheduler


logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    released: list[int] = field(default_factory=list)
    cancelled: list[int] = field(default_factory=list)
    held: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.released or self.cancelled or self.held)


class IdleReclaimer:
    def __init__(self, scheduler: AvailabilityScheduler) -> None:
        self._scheduler = scheduler

    async def _attempt(self, bucket: list[int], key: int, operation: Awaitable, report: SweepReport) -> None:
        try:
            outcome = await operation
        except LockTimeout:
            logger.debug("Skipping %s this cycle, table is locked", key)
            report.skipped.append(key)
            return
        except Exception:
            logger.exception("Reclaim step failed for %s", key)
            report.failed.append(key)
            return

        if outcome is None:
            return
        if is_failure(outcome):
            report.failed.append(key)
            return
        bucket.append(key)

    async def sweep(self) -> SweepReport:
        report = SweepReport()
        policy = self._scheduler.policy
        now = self._scheduler.now()

        for table in await self._scheduler.list_tables(state=TableState.OCCUPIED):
            if table.current_order_id is not None or now - table.state_changed_at <= policy.max_occupancy:
                continue
            await self._attempt(report.released, table.id, self._scheduler.reclaim_idle(table.id), report)

        for booking in await self._scheduler.list_overdue():
            await self._attempt(report.cancelled, booking.id, self._scheduler.reclaim_no_show(booking.id), report)

        for booking in await self._scheduler.list_upcoming(policy.immediate_effect_minutes):
            await self._attempt(report.held, booking.id, self._scheduler.hold_for_arrival(booking.id), report)

        if report.changed or report.failed:
            logger.info(
                "Reclaim sweep: released=%s cancelled=%s held=%s skipped=%s failed=%s",
                report.released, report.cancelled, report.held, report.skipped, report.failed,
            )
        return report
