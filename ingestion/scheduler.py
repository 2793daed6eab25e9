"""
Recurring job triggers on APScheduler.

Each scheduled job gets one APScheduler job with the same id. On every fire
the job definition is looked up again and handed to the dispatcher (the
engine submits it through the Control Bus). A failing or missing job is
logged and skipped; it never takes the scheduler down.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from models.job import EtlJob, ScheduleConfig

logger = logging.getLogger(__name__)

Dispatcher = Callable[[EtlJob], Awaitable[Any]]
JobLookup = Callable[[str], Optional[EtlJob]]

NOT_AVAILABLE = "N/A"

# Numeric day-of-week per dialect. APScheduler itself counts 0 = Monday,
# so numbers are rewritten as names before they reach CronTrigger.
_CRONTAB_DAYS = {"0": "sun", "1": "mon", "2": "tue", "3": "wed", "4": "thu", "5": "fri", "6": "sat", "7": "sun"}
_QUARTZ_DAYS = {"1": "sun", "2": "mon", "3": "tue", "4": "wed", "5": "thu", "6": "fri", "7": "sat"}

_DAY_NUMBER = re.compile(r"(?<![/\d])(\d)(?!\d)")


def _day_names(field: str, names: Dict[str, str]) -> str:
    def replace(match):
        number = match.group(1)
        if number not in names:
            raise ValueError(f"Invalid day of week: {number}")
        return names[number]
    return _DAY_NUMBER.sub(replace, field)


def _wildcard(field: str) -> str:
    return "*" if field == "?" else field


def build_cron_trigger(expression: str, tz: str) -> CronTrigger:
    """
    Parse a cron expression into a CronTrigger.

    Accepts standard 5-field crontab (``min hour dom mon dow``, 0 = Sunday)
    and Quartz-style 6/7-field expressions (``sec min hour dom mon dow [year]``,
    1 = Sunday, ``?`` as "no value", ``L`` as last day of month).

    Raises:
        ValueError: The expression cannot be parsed
    """
    fields = expression.split()

    if len(fields) == 5:
        minute, hour, day, month, dow = fields
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_day_names(dow, _CRONTAB_DAYS),
            timezone=tz,
        )

    if len(fields) in (6, 7):
        second, minute, hour, day, month, dow = fields[:6]
        year = fields[6] if len(fields) == 7 else None
        day = _wildcard(day)
        if day.upper() == "L":
            day = "last"
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_day_names(_wildcard(dow), _QUARTZ_DAYS),
            year=year,
            timezone=tz,
        )

    raise ValueError(f"Expected 5, 6 or 7 cron fields, got {len(fields)}")


class JobScheduler:
    def __init__(
        self,
        dispatcher: Dispatcher,
        timezone: str = "UTC",
        job_lookup: Optional[JobLookup] = None
    ):
        self.dispatcher = dispatcher
        self.timezone = timezone
        self._job_lookup = job_lookup
        self._jobs: Dict[str, EtlJob] = {}
        self.scheduler = AsyncIOScheduler(timezone=timezone)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Job scheduler started")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Job scheduler stopped")
        self._jobs.clear()

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def _build_trigger(self, schedule: ScheduleConfig):
        tz = schedule.timezone or self.timezone
        if schedule.has_cron:
            return build_cron_trigger(schedule.cron_expression.strip(), tz), False
        return IntervalTrigger(seconds=schedule.interval_seconds, timezone=tz), True

    def schedule_job(self, job: EtlJob, schedule: Optional[ScheduleConfig] = None) -> bool:
        """
        Install (or replace) the trigger of a job.

        Cron wins over interval when both are set; interval triggers fire
        immediately and then repeat. Disabled or malformed schedules, bad
        cron strings and unknown timezones leave the job unscheduled and
        return False. Never raises.
        """
        schedule = schedule or job.schedule
        if not job.id:
            logger.warning("Cannot schedule a job without an id")
            return False

        self.unschedule_job(job.id)

        if schedule is None or not schedule.enabled:
            logger.debug(f"Job {job.id} has no enabled schedule")
            return False
        if not schedule.is_valid():
            logger.warning(f"Job {job.id} has an incomplete schedule, not scheduling")
            return False

        try:
            trigger, immediate = self._build_trigger(schedule)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Invalid schedule for job {job.id}: {e}")
            return False

        options = {}
        if immediate:
            options["next_run_time"] = datetime.now(timezone.utc)

        try:
            self.scheduler.add_job(
                self._fire,
                trigger=trigger,
                args=[job.id],
                id=job.id,
                name=job.name or job.id,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                **options
            )
        except (ValueError, TypeError) as e:
            logger.warning(f"Could not schedule job {job.id}: {e}")
            return False

        self._jobs[job.id] = job
        logger.info(f"Scheduled job {job.id} with {trigger}")
        return True

    def schedule_all(self, jobs: Iterable[EtlJob]) -> int:
        """Schedule every job with an enabled schedule. Returns how many were scheduled."""
        scheduled = 0
        for job in jobs:
            if job.enabled and job.schedule is not None and job.schedule.enabled:
                if self.schedule_job(job):
                    scheduled += 1
        logger.info(f"Scheduled {scheduled} job(s)")
        return scheduled

    def unschedule_job(self, job_id: str) -> bool:
        existed = self._jobs.pop(job_id, None) is not None
        try:
            self.scheduler.remove_job(job_id)
            existed = True
        except JobLookupError:
            pass
        if existed:
            logger.info(f"Unscheduled job {job_id}")
        return existed

    def pause_job(self, job_id: str) -> bool:
        if not self.is_scheduled(job_id):
            return False
        self.scheduler.pause_job(job_id)
        logger.info(f"Paused schedule of job {job_id}")
        return True

    def resume_job(self, job_id: str) -> bool:
        if not self.is_scheduled(job_id):
            return False
        self.scheduler.resume_job(job_id)
        logger.info(f"Resumed schedule of job {job_id}")
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_scheduled(self, job_id: str) -> bool:
        return job_id in self._jobs and self.scheduler.get_job(job_id) is not None

    def get_next_fire_time(self, job_id: str) -> str:
        """Next fire time as ISO-8601, or "N/A" (unscheduled, paused, pending)."""
        job = self.scheduler.get_job(job_id)
        next_run = getattr(job, "next_run_time", None) if job is not None else None
        return next_run.isoformat() if next_run is not None else NOT_AVAILABLE

    def get_scheduled_jobs(self) -> List[Dict[str, Any]]:
        scheduled = []
        for job_id, job in self._jobs.items():
            aps_job = self.scheduler.get_job(job_id)
            if aps_job is None:
                continue
            scheduled.append({
                "job_id": job_id,
                "name": job.name,
                "trigger": str(aps_job.trigger),
                "next_fire_time": self.get_next_fire_time(job_id),
                "paused": getattr(aps_job, "next_run_time", None) is None,
            })
        return scheduled

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    def _lookup(self, job_id: str) -> Optional[EtlJob]:
        if self._job_lookup is not None:
            return self._job_lookup(job_id)
        return self._jobs.get(job_id)

    async def _fire(self, job_id: str):
        job = self._lookup(job_id)
        if job is None:
            logger.warning(f"Scheduled job {job_id} no longer exists, skipping trigger")
            return

        logger.info(f"Scheduler: firing job {job_id}")
        try:
            await self.dispatcher(job)
        except Exception as e:
            logger.error(f"Scheduler: dispatch of job {job_id} failed - {e}")
