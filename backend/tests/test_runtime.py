import json
import logging
import sys
from datetime import timedelta
from unittest.mock import Mock

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from backend.app.core.config import Settings
from backend.app.core.logging import JsonFormatter, configure_logging
from backend.app.domain.policy import SchedulingPolicy
from backend.app.jobs.reclaim_job import RECLAIM_JOB_ID, schedule_reclaimer
from backend.app.services.reclaimer import IdleReclaimer
from backend.app.services.scheduler import AvailabilityScheduler


def test_policy_reads_settings():
    settings = Settings(MAX_OCCUPANCY_MINUTES=120, NO_SHOW_GRACE_MINUTES=10)

    policy = SchedulingPolicy.from_settings(settings)

    assert policy.max_occupancy == timedelta(minutes=120)
    assert policy.no_show_grace == timedelta(minutes=10)
    assert policy.immediate_effect_minutes == 15


def test_json_formatter_includes_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord(
            "backend.app.services.reclaimer", logging.ERROR, __file__, 1, "sweep failed for %s", (3,), sys.exc_info()
        )

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "ERROR"
    assert payload["message"] == "sweep failed for 3"
    assert "ValueError: boom" in payload["exception"]


def test_configure_logging_replaces_root_handlers():
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        configure_logging("debug", json_output=True)

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.DEBUG
    finally:
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])


def test_reclaimer_job_registration():
    jobs = AsyncIOScheduler()

    schedule_reclaimer(jobs, IdleReclaimer(Mock(spec=AvailabilityScheduler)), 30)

    job = jobs.get_job(RECLAIM_JOB_ID)
    assert len(jobs.get_jobs()) == 1
    assert job.trigger.interval == timedelta(seconds=30)
    assert job.max_instances == 1
