from fastapi import APIRouter, Depends, HTTPException, Request, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core import redis_client as redis_module
from backend.app.db.session import get_session


router = APIRouter()


def _unavailable(component: str) -> HTTPException:
    return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"{component} unavailable")


@router.get("/healthz")
async def healthz() -> dict[str, bool]:
    """Liveness only; touches no dependency."""
    return {"ok": True}


@router.get("/readiness")
async def readiness(request: Request, session: AsyncSession = Depends(get_session)) -> dict[str, bool]:
    """Bookings need the database, the table-lock store and a running scheduler."""
    if getattr(request.app.state, "scheduler", None) is None:
        raise _unavailable("Scheduler")
    if redis_module.redis_client is None:
        raise _unavailable("Redis")

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise _unavailable("Database") from exc
    try:
        await redis_module.redis_client.ping()
    except RedisError as exc:
        raise _unavailable("Redis") from exc

    return {"ready": True}
