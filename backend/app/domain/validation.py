"""
Input checks run by the scheduler before any state transition.

Each check returns a list of messages instead of raising, so a request with
several problems reports all of them at once.
"""

from datetime import datetime, timedelta

from backend.app.domain.models import TimeWindow
from backend.app.domain.policy import SchedulingPolicy


def _is_aware(ts: datetime) -> bool:
    return ts.tzinfo is not None and ts.tzinfo.utcoffset(ts) is not None


def validate_party_size(party_size: int) -> list[str]:
    if party_size < 1:
        return ["party_size must be at least 1"]
    return []


def validate_window(window: TimeWindow) -> list[str]:
    """Shape-only checks, no policy: timezone-aware, positive, whole minutes."""
    if not _is_aware(window.start) or not _is_aware(window.end):
        return ["start must include timezone information"]
    if window.end <= window.start:
        return ["window must have a positive duration"]
    if window.duration % timedelta(minutes=1):
        return ["duration must be a whole number of minutes"]
    return []


def validate_booking(
    window: TimeWindow,
    party_size: int,
    policy: SchedulingPolicy,
    now: datetime,
) -> list[str]:
    errors = validate_party_size(party_size)
    shape = validate_window(window)
    if shape:
        return errors + shape

    minutes = window.duration.total_seconds() / 60
    if minutes < policy.min_reservation_minutes:
        errors.append(f"duration must be at least {policy.min_reservation_minutes} minutes")
    if minutes > policy.max_reservation_minutes:
        errors.append(f"duration must be at most {policy.max_reservation_minutes} minutes")
    if window.start <= now:
        errors.append("start must be in the future")
    if window.start > now + policy.advance_booking:
        errors.append(f"reservations open at most {policy.advance_booking_days} days ahead")
    return errors
