from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from backend.app.core.config import Settings


@dataclass(frozen=True)
class SchedulingPolicy:
    """Business constants, fixed for the life of the process."""

    min_reservation_minutes: int = 30
    max_reservation_minutes: int = 480
    advance_booking_days: int = 30
    immediate_effect_minutes: int = 15
    max_occupancy_minutes: int = 180
    no_show_grace_minutes: int = 15
    walk_in_minutes: int = 90
    occupancy_attention_minutes: int = 150
    cleaning_interval_minutes: int = 240

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulingPolicy:
        return cls(
            min_reservation_minutes=settings.MIN_RESERVATION_MINUTES,
            max_reservation_minutes=settings.MAX_RESERVATION_MINUTES,
            advance_booking_days=settings.ADVANCE_BOOKING_DAYS,
            immediate_effect_minutes=settings.IMMEDIATE_EFFECT_MINUTES,
            max_occupancy_minutes=settings.MAX_OCCUPANCY_MINUTES,
            no_show_grace_minutes=settings.NO_SHOW_GRACE_MINUTES,
            walk_in_minutes=settings.WALK_IN_MINUTES,
            occupancy_attention_minutes=settings.OCCUPANCY_ATTENTION_MINUTES,
            cleaning_interval_minutes=settings.CLEANING_INTERVAL_MINUTES,
        )

    @property
    def immediate_effect(self) -> timedelta:
        return timedelta(minutes=self.immediate_effect_minutes)

    @property
    def max_occupancy(self) -> timedelta:
        return timedelta(minutes=self.max_occupancy_minutes)

    @property
    def no_show_grace(self) -> timedelta:
        return timedelta(minutes=self.no_show_grace_minutes)

    @property
    def advance_booking(self) -> timedelta:
        return timedelta(days=self.advance_booking_days)

    @property
    def cleaning_interval(self) -> timedelta:
        return timedelta(minutes=self.cleaning_interval_minutes)
