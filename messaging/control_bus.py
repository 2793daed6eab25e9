"""
Control Bus: start, stop and observe job executions.

Each execution runs as its own ``asyncio.Task``. Its ExecutionRecord stays
queryable for a retention window after it finishes; expired records are
swept lazily on every access and periodically by a sweeper task started
with :meth:`ControlBus.start`.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from core.exceptions import JobAlreadyRunningError, UnsupportedOperationError
from models.base import JobStatus, UNKNOWN_STATUS
from models.execution import ExecutionRecord

logger = logging.getLogger(__name__)

TaskFactory = Callable[[ExecutionRecord], Awaitable[Any]]


class ControlBus:
    def __init__(
        self,
        retention_seconds: float = 60.0,
        sweep_interval_seconds: float = 15.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.retention_seconds = retention_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock

        self._records: Dict[str, ExecutionRecord] = {}
        self._finished_at: Dict[str, float] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start the periodic sweeper on the running loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())
            logger.info("Control bus started")

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            purged = self.purge_expired()
            if purged:
                logger.debug(f"Purged {purged} expired execution records")

    async def shutdown(self):
        """Cancel every active execution, wait for them and stop the sweeper."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None

        with self._lock:
            job_ids = list(self._tasks)
        for job_id in job_ids:
            self.stop_job(job_id)

        with self._lock:
            tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Control bus shut down ({len(tasks)} executions cancelled)")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start_job(self, job_id: str, task_factory: TaskFactory) -> asyncio.Task:
        """
        Register a Pending record for ``job_id`` and launch the task.

        ``task_factory`` receives the live record and returns the awaitable
        to run. If it resolves to an ExecutionRecord, that record's outcome
        is copied over; any other result counts as success.

        Raises:
            JobAlreadyRunningError: A previous run of the job is still active
        """
        self._purge_if_due()

        with self._lock:
            existing = self._records.get(job_id)
            if existing is not None and not existing.is_finished:
                raise JobAlreadyRunningError(
                    f"Job {job_id} is already {existing.status.value}",
                    context={"job_id": job_id, "run_id": existing.run_id}
                )

            record = ExecutionRecord(job_id=job_id)
            self._records[job_id] = record
            self._finished_at.pop(job_id, None)

            task = asyncio.get_running_loop().create_task(
                self._run(job_id, record, task_factory),
                name=f"etl-job-{job_id}"
            )
            self._tasks[job_id] = task

        task.add_done_callback(lambda t: self._on_done(job_id, record, t))
        logger.info(f"Control bus started job {job_id} (run {record.run_id})")
        return task

    async def _run(self, job_id: str, record: ExecutionRecord, task_factory: TaskFactory) -> Any:
        with self._lock:
            if record.is_finished:
                return None
            record.mark_running()

        try:
            result = await task_factory(record)
        except asyncio.CancelledError:
            with self._lock:
                if not record.is_finished:
                    record.mark_cancelled("Execution cancelled")
            raise
        except Exception as e:
            with self._lock:
                if not record.is_finished:
                    record.mark_failed(str(e))
            logger.error(f"Job {job_id} failed: {e}")
            return None

        with self._lock:
            if not record.is_finished:
                self._apply_result(record, result)
        return result

    @staticmethod
    def _apply_result(record: ExecutionRecord, result: Any):
        if not isinstance(result, ExecutionRecord):
            record.mark_success()
            return

        record.metrics = result.metrics
        if result.status == JobStatus.FAILED:
            record.mark_failed(result.error_message)
            record.records_processed = result.records_processed
        elif result.status == JobStatus.CANCELLED:
            record.mark_cancelled(result.error_message)
        else:
            record.mark_success(result.records_processed)

    def _on_done(self, job_id: str, record: ExecutionRecord, task: asyncio.Task):
        with self._lock:
            if self._tasks.get(job_id) is task:
                del self._tasks[job_id]
            if not record.is_finished:
                # Cancelled before its first step ran
                record.mark_cancelled("Execution cancelled")
            if self._records.get(job_id) is record:
                self._finished_at.setdefault(job_id, self._clock())

        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Job {job_id} task ended with an error: {task.exception()}")

    def stop_job(self, job_id: str) -> bool:
        """
        Cancel a Pending or Running execution and mark it Cancelled.

        Returns False when there is nothing to stop (unknown or already finished).
        """
        with self._lock:
            record = self._records.get(job_id)
            if record is None or record.is_finished:
                return False
            record.mark_cancelled("Stopped via control bus")
            self._finished_at[job_id] = self._clock()
            task = self._tasks.get(job_id)

        if task is not None:
            task.cancel()
        logger.info(f"Control bus stopped job {job_id}")
        return True

    def pause_job(self, job_id: str) -> bool:
        raise UnsupportedOperationError(
            "Pausing a running execution is not supported",
            context={"job_id": job_id}
        )

    def resume_job(self, job_id: str) -> bool:
        raise UnsupportedOperationError(
            "Resuming an execution is not supported",
            context={"job_id": job_id}
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_status(self, job_id: str) -> Union[JobStatus, str]:
        """Current status, or ``"unknown"`` if no record exists."""
        self._purge_if_due()
        with self._lock:
            record = self._records.get(job_id)
            return record.status if record is not None else UNKNOWN_STATUS

    def get_record(self, job_id: str) -> Optional[ExecutionRecord]:
        """The live record of the job's latest execution."""
        self._purge_if_due()
        with self._lock:
            return self._records.get(job_id)

    def get_task(self, job_id: str) -> Optional[asyncio.Task]:
        with self._lock:
            return self._tasks.get(job_id)

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            record = self._records.get(job_id)
            return record is not None and not record.is_finished

    def running_jobs(self) -> Dict[str, ExecutionRecord]:
        """Snapshot of Pending and Running executions."""
        self._purge_if_due()
        with self._lock:
            return {
                job_id: record.model_copy()
                for job_id, record in self._records.items()
                if not record.is_finished
            }

    def all_records(self) -> List[ExecutionRecord]:
        self._purge_if_due()
        with self._lock:
            return [record.model_copy() for record in self._records.values()]

    @property
    def active_count(self) -> int:
        with self._lock:
            return sum(1 for record in self._records.values() if not record.is_finished)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def _purge_if_due(self):
        if self._finished_at:
            self.purge_expired()

    def purge_expired(self) -> int:
        """Drop terminal records older than the retention window."""
        now = self._clock()
        with self._lock:
            expired = [
                job_id for job_id, finished in self._finished_at.items()
                if now - finished >= self.retention_seconds
                and job_id in self._records
                and self._records[job_id].is_finished
            ]
            for job_id in expired:
                del self._records[job_id]
                del self._finished_at[job_id]
        return len(expired)

    def cleanup_finished_jobs(self) -> int:
        """Drop every terminal record regardless of age."""
        with self._lock:
            finished = [job_id for job_id, record in self._records.items() if record.is_finished]
            for job_id in finished:
                del self._records[job_id]
                self._finished_at.pop(job_id, None)
        return len(finished)
