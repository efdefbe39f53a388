"""
Scheduler for periodic maintenance jobs
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import settings

logger = logging.getLogger(__name__)


def parse_job_time(time_str: str) -> tuple[int, int]:
    """'HH:MM' -> (hour, minute)"""
    parts = time_str.split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid job time {time_str!r}, expected HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid job time {time_str!r}")
    return hour, minute


class SchedulerService:
    """Owns the AsyncIOScheduler and the periodic jobs registered on it"""

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone=settings.property_timezone)
        self._jobs_registered = False

    def register_jobs(self):
        if self._jobs_registered:
            logger.warning("Jobs already registered")
            return

        if not settings.enable_compaction_job:
            logger.info("Calendar compaction job is disabled in settings")
            self._jobs_registered = True
            return

        from app.jobs.compaction_job import compact_calendars_job

        try:
            hour, minute = parse_job_time(settings.compaction_time)
        except ValueError as e:
            logger.error(f"Compaction job not registered: {e}")
        else:
            self.scheduler.add_job(
                compact_calendars_job,
                CronTrigger(hour=hour, minute=minute),
                id="calendar_compaction",
                name="Compact past calendar overrides",
                replace_existing=True,
            )
            logger.info(
                f"Registered calendar compaction job (at {settings.compaction_time})"
            )

        self._jobs_registered = True

    def start(self):
        if not self.scheduler.running:
            self.register_jobs()
            self.scheduler.start()
            logger.info("Scheduler started")
        else:
            logger.warning("Scheduler already running")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")

    def get_jobs(self):
        return self.scheduler.get_jobs()


scheduler_service = SchedulerService()
