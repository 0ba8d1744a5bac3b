"""Celery configuration for scheduled jobs."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from studiodesk.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

celery_app = Celery("studiodesk", broker=broker_url, backend=backend_url, include=["studiodesk.jobs.daily"])
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "daily-rotation": {
        "task": "studiodesk.jobs.daily.run_daily",
        "schedule": crontab(hour=int(os.environ.get("ROTATION_HOUR", "6")), minute=int(os.environ.get("ROTATION_MINUTE", "0"))),
    },
    "cooldown-release": {
        "task": "studiodesk.jobs.daily.run_cooldown_release",
        "schedule": crontab(minute=int(os.environ.get("COOLDOWN_RELEASE_MINUTE", "5"))),
    },
}


@celery_app.task(name="studiodesk.jobs.daily.run_daily")
def run_daily_task() -> str:  # pragma: no cover - executed by worker
    from studiodesk.jobs.daily import run_daily

    return str(run_daily())


@celery_app.task(name="studiodesk.jobs.daily.run_cooldown_release")
def run_cooldown_release_task() -> int:  # pragma: no cover - executed by worker
    from studiodesk.jobs.daily import run_cooldown_release

    return run_cooldown_release()
