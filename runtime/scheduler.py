"""
Daily Scheduler

Runs async jobs once a day at a wall-clock time in a configured zone, on
APScheduler's AsyncIOScheduler with one cron trigger per job. A failing job
is logged and runs again at the next occurrence.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from runtime.time_utils import get_zone, parse_clock, utcnow

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]

# A run delayed by a busy loop or a restart still fires within this window
MISFIRE_GRACE_SECONDS = 300


@dataclass
class DailyJob:
    name: str
    at: time
    callback: Job
    trigger: CronTrigger
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None


class DailyScheduler:
    """Once-a-day job runner on the asyncio event loop"""

    def __init__(self, timezone: str = "UTC",
                 clock: Callable[[], datetime] = utcnow,
                 scheduler: Optional[AsyncIOScheduler] = None):
        self.zone = get_zone(timezone)  # fail fast on unknown zones
        self.timezone = timezone
        self._clock = clock
        self._scheduler = scheduler or AsyncIOScheduler(timezone=self.zone)
        self.jobs: Dict[str, DailyJob] = {}

    def every_day_at(self, at: str, name: str, callback: Job) -> DailyJob:
        """Register `callback` to run daily at "HH:MM". Raises TimeFormatError."""
        clock = parse_clock(at)
        job = DailyJob(
            name=name,
            at=clock,
            callback=callback,
            trigger=CronTrigger(hour=clock.hour, minute=clock.minute, timezone=self.zone),
        )
        self.jobs[name] = job
        self._scheduler.add_job(
            self.run_job,
            job.trigger,
            args=[job],
            id=name,
            name=name,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
        )
        logger.info(f"Scheduled job '{name}' daily at {at} {self.timezone}")
        return job

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def next_run(self, name: str) -> Optional[datetime]:
        """Next fire time of `name` after the current clock"""
        return self.jobs[name].trigger.get_next_fire_time(None, self._clock())

    async def start(self):
        """Start firing jobs on the running event loop"""
        if self.running:
            return
        self._scheduler.start()
        logger.info(f"Scheduler started with {len(self.jobs)} jobs")

    async def stop(self):
        if not self.running:
            return
        self._scheduler.shutdown(wait=False)
        # shutdown is queued on the loop; let it run
        await asyncio.sleep(0)
        logger.info("Scheduler stopped")

    async def run_job(self, job: DailyJob) -> bool:
        """Run one job now. Returns False if it raised; the error is logged, not propagated."""
        logger.info(f"Running job '{job.name}'")
        job.last_run = self._clock()
        try:
            await job.callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.last_error = str(e)
            logger.exception(f"Job '{job.name}' failed: {e}")
            return False
        job.last_error = None
        return True
