import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from backend.app.core.config import settings
from backend.app.core.locks import LockTimeout, TableLocks
from backend.app.core.logging import configure_logging
from backend.app.core.redis_client import close_redis, init_redis
from backend.app.db.session import SessionLocal
from backend.app.domain.policy import SchedulingPolicy
from backend.app.jobs.reclaim_job import schedule_reclaimer
from backend.app.routers.deps import RETRY_MESSAGE
from backend.app.services.reclaimer import IdleReclaimer
from backend.app.services.scheduler import AvailabilityScheduler
import backend.app.routers.availability as availability
import backend.app.routers.health as health
import backend.app.routers.reservations as reservations
import backend.app.routers.tables as tables


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    client = await init_redis()

    locks = TableLocks(
        client,
        ttl_ms=settings.TABLE_LOCK_TTL_MS,
        wait_seconds=settings.TABLE_LOCK_WAIT_SECONDS,
        poll_seconds=settings.TABLE_LOCK_POLL_SECONDS,
    )
    scheduler = AvailabilityScheduler(SessionLocal, locks, SchedulingPolicy.from_settings(settings))
    app.state.scheduler = scheduler

    job_scheduler = AsyncIOScheduler()
    schedule_reclaimer(job_scheduler, IdleReclaimer(scheduler), settings.RECLAIM_INTERVAL_SECONDS)
    job_scheduler.start()
    app.state.job_scheduler = job_scheduler
    logger.info("Idle reclaimer every %ss", settings.RECLAIM_INTERVAL_SECONDS)

    try:
        yield
    finally:
        job_scheduler.shutdown(wait=False)
        app.state.scheduler = None
        await close_redis()


app = FastAPI(
    title="Table Scheduling API",
    lifespan=lifespan,
)


@app.exception_handler(LockTimeout)
async def lock_timeout_handler(request: Request, exc: LockTimeout) -> JSONResponse:
    logger.warning("Lock timeout on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": RETRY_MESSAGE})


app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(availability.router, prefix=settings.API_PREFIX)
app.include_router(reservations.router, prefix=settings.API_PREFIX)
app.include_router(tables.router, prefix=settings.API_PREFIX)
