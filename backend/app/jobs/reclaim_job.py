"""Runs every RECLAIM_INTERVAL_SECONDS: release idle tables, cancel no-shows, hold arriving tables."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from backend.app.services.reclaimer import IdleReclaimer


RECLAIM_JOB_ID = "idle_reclaimer"


def schedule_reclaimer(job_scheduler: AsyncIOScheduler, reclaimer: IdleReclaimer, interval_seconds: int) -> None:
    job_scheduler.add_job(
        reclaimer.sweep,
        "interval",
        seconds=interval_seconds,
        id=RECLAIM_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
