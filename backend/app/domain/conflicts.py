from collections.abc import Iterable

from backend.app.domain.models import Reservation, TimeWindow


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    """Half-open overlap: touching endpoints do not conflict."""
    return a.start < b.end and b.start < a.end


def find_conflicts(
    window: TimeWindow,
    reservations: Iterable[Reservation],
    *,
    exclude_id: int | None = None,
) -> list[Reservation]:
    """Active reservations whose window overlaps ``window``."""
    return [
        r
        for r in reservations
        if r.is_active and r.id != exclude_id and overlaps(window, r.window)
    ]
