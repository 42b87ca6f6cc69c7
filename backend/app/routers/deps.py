from fastapi import HTTPException, Request, status

from backend.app.domain.results import (
    CapacityExceeded,
    Conflict,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)
from backend.app.services.scheduler import AvailabilityScheduler


RETRY_MESSAGE = "The request could not be completed, please try again"


def get_scheduler(request: Request) -> AvailabilityScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Scheduler unavailable")
    return scheduler


def raise_for_failure(outcome, *, alternates: list | None = None, alternate_times: list[str] | None = None) -> None:
    """Translate a failure outcome into the HTTP error the UI expects."""
    if isinstance(outcome, Conflict):
        raise HTTPException(
            status.HTTP_409_CONFLICT,
            detail={
                "message": outcome.message,
                "alternates": alternates or [],
                "alternate_times": alternate_times or [],
            },
        )
    if isinstance(outcome, CapacityExceeded):
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": outcome.message, "suggested_tables": alternates or []},
        )
    if isinstance(outcome, ValidationFailed):
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail={"errors": list(outcome.errors)})
    if isinstance(outcome, NotFound):
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=outcome.message)
    if isinstance(outcome, InvalidTransition):
        # Not user-actionable; details are in the server log
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=RETRY_MESSAGE)
