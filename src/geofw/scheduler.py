from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler

from geofw.config import Settings

JOB_ID = "job_refresh"


def start_scheduler(cfg: Settings, job: Callable[[], None]) -> BackgroundScheduler:
    """Start the daily refresh job at ``cfg.refresh_time`` (UTC)."""
    sched = BackgroundScheduler(timezone="UTC")

    hour, minute = map(int, cfg.refresh_time.split(":"))
    sched.add_job(
        job,
        "cron",
        hour=hour,
        minute=minute,
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
    )

    sched.start()
    return sched
