"""
Engine composition and lifecycle.

``EtlEngine`` builds every service explicitly and passes them by reference:
there are no process-wide singletons. Lifecycle is ``EtlEngine(...)`` →
``await start()`` → ``await shutdown()``.
"""

import logging
from pathlib import Path
from typing import List, Optional

from core.config import Settings, settings as default_settings
from core.database import ConnectionManager
from core.exceptions import ConfigurationError
from core.http import HttpClientPool
from ingestion.repository import InMemoryJobRepository, JobRepository
from ingestion.runner import ETLRunner
from ingestion.scheduler import JobScheduler
from messaging.control_bus import ControlBus
from messaging.dead_letter import DeadLetterChannel
from messaging.message_store import MessageStore
from messaging.wire_tap import WireTap, logging_listener
from models.execution import ExecutionRecord
from models.job import EtlJob

logger = logging.getLogger(__name__)


class EtlEngine:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        repository: Optional[JobRepository] = None,
        *,
        connections: Optional[ConnectionManager] = None,
        clients: Optional[HttpClientPool] = None,
        message_store: Optional[MessageStore] = None,
        wire_tap: Optional[WireTap] = None,
        dead_letter: Optional[DeadLetterChannel] = None,
        control_bus: Optional[ControlBus] = None,
        runner: Optional[ETLRunner] = None,
        scheduler: Optional[JobScheduler] = None
    ):
        self.settings = settings or default_settings
        self.repository = repository or InMemoryJobRepository()
        data_dir = Path(self.settings.DATA_DIR)

        self.connections = connections or ConnectionManager(self.settings)
        self.clients = clients or HttpClientPool(self.settings)
        self.message_store = message_store or MessageStore(
            max_messages=self.settings.MESSAGE_STORE_MAX_MESSAGES,
            directory=data_dir / "message-store",
            persist=self.settings.MESSAGE_STORE_PERSIST,
        )
        self.wire_tap = wire_tap or WireTap(self.message_store, enabled=self.settings.WIRE_TAP_ENABLED)
        if self.settings.WIRE_TAP_LOG_MESSAGES:
            self.wire_tap.add_listener(logging_listener)

        self.dead_letter = dead_letter or DeadLetterChannel(
            directory=data_dir / "dead-letter",
            persist=self.settings.DEAD_LETTER_PERSIST,
        )
        self.control_bus = control_bus or ControlBus(
            retention_seconds=self.settings.CONTROL_BUS_RETENTION_SECONDS,
            sweep_interval_seconds=self.settings.CONTROL_BUS_SWEEP_INTERVAL_SECONDS,
        )
        self.runner = runner or ETLRunner(
            self.connections,
            self.clients,
            wire_tap=self.wire_tap,
            dead_letter=self.dead_letter,
            settings=self.settings,
        )
        self.scheduler = scheduler or JobScheduler(
            self.submit_job,
            timezone=self.settings.SCHEDULER_TIMEZONE,
            job_lookup=self.repository.get,
        )
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> int:
        """Start the control bus sweeper and the scheduler, then schedule stored jobs."""
        if self._started:
            return 0

        self.control_bus.start()
        self.scheduler.start()
        scheduled = self.scheduler.schedule_all(self.repository.load_all())
        self._started = True
        logger.info(f"ETL engine started ({scheduled} scheduled job(s))")
        return scheduled

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def list_jobs(self) -> List[EtlJob]:
        return self.repository.load_all()

    def get_job(self, job_id: str) -> Optional[EtlJob]:
        return self.repository.get(job_id)

    def _validate(self, job: EtlJob):
        errors = job.validation_errors()
        if errors:
            raise ConfigurationError(
                f"Job {job.id or '<unnamed>'} is not executable",
                context={"job_id": job.id, "invalid_fields": errors}
            )

    async def submit_job(self, job: EtlJob) -> ExecutionRecord:
        """
        Validate a job and start it through the control bus.

        Returns the live ExecutionRecord of the new run.

        Raises:
            ConfigurationError: Invalid job (nothing is started)
            JobAlreadyRunningError: A previous run of the job is still active
        """
        self._validate(job)
        self.control_bus.start_job(
            job.id,
            lambda record: self.runner.execute(job, run_id=record.run_id)
        )
        return self.control_bus.get_record(job.id)

    async def run_job(self, job_id: str) -> Optional[ExecutionRecord]:
        """Submit a stored job by id. Returns None if it does not exist."""
        job = self.repository.get(job_id)
        if job is None:
            logger.warning(f"Job {job_id} not found")
            return None
        return await self.submit_job(job)

    def register_job(self, job: EtlJob) -> bool:
        """
        Store a job and (re)install its trigger.

        Returns whether the job ended up scheduled.

        Raises:
            ConfigurationError: Invalid job (nothing is stored)
        """
        self._validate(job)
        self.repository.save(job)
        if job.enabled and job.schedule is not None and job.schedule.enabled:
            return self.scheduler.schedule_job(job)
        self.scheduler.unschedule_job(job.id)
        return False

    def remove_job(self, job_id: str) -> bool:
        self.scheduler.unschedule_job(job_id)
        return self.repository.delete(job_id)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self):
        """
        Stop triggers, cancel running executions, finish durable record writes,
        release pooled connections and HTTP clients. Each step is best
        effort: failures are logged and the next step still runs.
        """
        logger.info("Shutting down ETL engine")

        try:
            self.scheduler.shutdown()
        except Exception:
            logger.exception("Error stopping scheduler")

        try:
            await self.control_bus.shutdown()
        except Exception:
            logger.exception("Error shutting down control bus")

        try:
            await self.message_store.flush()
            await self.dead_letter.flush()
        except Exception:
            logger.exception("Error flushing durable records")

        try:
            await self.connections.close_all()
        except Exception:
            logger.exception("Error closing database connections")

        try:
            await self.clients.close_all()
        except Exception:
            logger.exception("Error closing HTTP clients")

        self._started = False
        logger.info("ETL engine stopped")
