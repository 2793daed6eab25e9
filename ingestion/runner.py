# ============================================================================
# File: ingestion/runner.py
# Description: Job orchestrator driving Extract → Transform → Load
# ============================================================================
"""
ETL Runner - Orchestrates one job's Extract, Transform, Load sequence.

This module is the single place where any error raised by endpoints,
transformers or the retry machinery becomes a terminal ExecutionRecord:
- Configuration errors are raised before anything runs
- Transient extract failures get one reconnect and one retry
- Loads go through the retry handler; undeliverable messages are dead-lettered
- Cancellation is tapped, recorded and propagated to the caller
- Per-stage metrics are recorded whatever the outcome
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Optional

from core.config import Settings, settings as default_settings
from core.database import ConnectionManager
from core.exceptions import (
    ConfigurationError,
    DataFormatError,
    DeliveryError,
    ETLException,
    RetryableError,
    RetryExhaustedError,
)
from core.http import HttpClientPool
from ingestion.endpoints.base import MessageEndpoint
from ingestion.endpoints.database import DatabaseEndpoint
from ingestion.endpoints.rest_api import RestApiEndpoint
from ingestion.transformers.enricher import ContentEnricher
from ingestion.transformers.normalizer import DataNormalizer
from ingestion.transformers.translator import DatabaseToJsonTranslator
from ingestion.transformers.validator import JsonStructureValidator
from messaging.dead_letter import DeadLetterChannel
from messaging.pipeline import Pipeline
from messaging.retry import RetryHandler, RetryPolicy
from messaging.wire_tap import WireTap
from models.execution import ExecutionMetrics, ExecutionRecord
from models.job import EtlJob
from models.message import Message

logger = logging.getLogger(__name__)

EndpointFactory = Callable[[EtlJob], MessageEndpoint]


def describe_error(error: BaseException) -> str:
    """Short error text for execution records (no context dump)."""
    if isinstance(error, ETLException):
        return f"{type(error).__name__}: {error.message}"
    return f"{type(error).__name__}: {error}"


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


class ETLRunner:
    """
    Job Orchestrator

    Responsibilities:
    - Validate the job before execution
    - Extract through the source endpoint (reconnect once on transient failure)
    - Transform through the job's pipeline
    - Load through the sink endpoint with guaranteed delivery
    - Emit lifecycle tap events and record metrics
    """

    def __init__(
        self,
        connections: ConnectionManager,
        clients: HttpClientPool,
        wire_tap: Optional[WireTap] = None,
        dead_letter: Optional[DeadLetterChannel] = None,
        settings: Optional[Settings] = None,
        source_factory: Optional[EndpointFactory] = None,
        sink_factory: Optional[EndpointFactory] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.connections = connections
        self.clients = clients
        self.wire_tap = wire_tap
        self.dead_letter = dead_letter or DeadLetterChannel(persist=False)
        self.settings = settings or default_settings
        self.source_factory = source_factory or self._default_source
        self.sink_factory = sink_factory or self._default_sink
        self.validator = JsonStructureValidator()
        self._sleep = sleep

    def _default_source(self, job: EtlJob) -> MessageEndpoint:
        return DatabaseEndpoint(
            job.source_config,
            self.connections,
            reconnect_delay=self.settings.SOURCE_RECONNECT_DELAY_SECONDS,
            sleep=self._sleep,
        )

    def _default_sink(self, job: EtlJob) -> MessageEndpoint:
        return RestApiEndpoint(job.target_config, self.clients)

    def build_pipeline(self, job: EtlJob) -> Pipeline:
        """Normalizer → Content Enricher → JSON translator, configured from the job."""
        options = job.transforms()
        return Pipeline(
            self.wire_tap,
            [
                DataNormalizer(options.normalizer),
                ContentEnricher(options.enricher),
                DatabaseToJsonTranslator(options.translator),
            ],
        )

    def _tap(self, message: Message, context: str):
        if self.wire_tap is not None:
            self.wire_tap.intercept(message, context)

    def _event(self, action: str, run_id: str, job: EtlJob, context: str, **headers):
        self._tap(
            Message.event(action, correlation_id=run_id, jobId=job.id, jobName=job.name, **headers),
            context,
        )

    async def _extract(self, source: MessageEndpoint, job: EtlJob) -> Message:
        try:
            return await source.extract(job.query, job.query_parameters)
        except RetryableError as e:
            logger.warning(
                f"Transient extract failure for job {job.id}, reconnecting once: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            await source.reconnect()
            return await source.extract(job.query, job.query_parameters)

    async def execute(self, job: EtlJob, run_id: Optional[str] = None) -> ExecutionRecord:
        """
        Run one job and return its terminal ExecutionRecord.

        Raises:
            ConfigurationError: The job failed static validation (nothing ran)
            asyncio.CancelledError: The run was cancelled (record already Cancelled)
        """
        errors = job.validation_errors()
        if errors:
            raise ConfigurationError(
                f"Job {job.id or '<unnamed>'} is not executable",
                context={"job_id": job.id, "invalid_fields": errors}
            )

        run_id = run_id or str(uuid.uuid4())
        record = ExecutionRecord(job_id=job.id, run_id=run_id)
        metrics = ExecutionMetrics(job_id=job.id, run_id=run_id)
        record.metrics = metrics

        if not job.enabled:
            logger.info(f"Job {job.id} is disabled, skipping")
            record.mark_cancelled("Job is disabled")
            metrics.finish(False, record.error_message)
            return record

        record.mark_running()
        logger.info(f"Starting job {job.id} ({job.name}), run {run_id}")
        self._event("job-start", run_id, job, "orchestrator-start")

        # Last message that reached the load stage; this is what gets dead-lettered
        outgoing: Optional[Message] = None

        try:
            source = self.source_factory(job)
            sink = self.sink_factory(job)

            # --------------------------------------------------
            # PHASE 1: EXTRACT
            # --------------------------------------------------
            started = time.perf_counter()
            try:
                extracted = await self._extract(source, job)
            finally:
                metrics.extract_duration_ms = _elapsed_ms(started)

            extracted.correlation_id = run_id
            extracted.add_header("jobId", job.id)
            metrics.records_extracted = extracted.record_count()
            self._tap(extracted, "orchestrator-extract")

            # --------------------------------------------------
            # PHASE 2: TRANSFORM
            # --------------------------------------------------
            started = time.perf_counter()
            try:
                transformed = self.build_pipeline(job).process(extracted)
            finally:
                metrics.transform_duration_ms = _elapsed_ms(started)

            metrics.records_transformed = transformed.record_count()
            self._tap(transformed, "orchestrator-transform")
            outgoing = transformed
            self.validator.ensure_deliverable(transformed)

            # --------------------------------------------------
            # PHASE 3: LOAD (GUARANTEED DELIVERY)
            # --------------------------------------------------
            retry = RetryHandler(
                RetryPolicy.for_target(job.target_config, self.settings),
                sleep=self._sleep,
                name=f"Delivery of job {job.id} to '{sink.name}'",
            )
            started = time.perf_counter()
            try:
                outcome = await retry.execute_with_retry(lambda: sink.deliver(transformed))
            finally:
                metrics.load_duration_ms = _elapsed_ms(started)

            metrics.records_loaded = transformed.record_count()
            record.mark_success(metrics.records_loaded)
            metrics.finish(True)

            logger.info(
                f"Job {job.id} succeeded: {metrics.records_loaded} records delivered "
                f"(HTTP {outcome.status_code}, {retry.attempts_made} attempt(s))"
            )
            self._event(
                "job-success", run_id, job, "orchestrator-success",
                recordCount=metrics.records_loaded,
            )

        except asyncio.CancelledError:
            record.mark_cancelled("Execution cancelled")
            metrics.finish(False, record.error_message)
            logger.info(f"Job {job.id} cancelled (run {run_id})")
            self._event("job-cancelled", run_id, job, "orchestrator-cancelled")
            raise

        except (DeliveryError, RetryExhaustedError, DataFormatError) as e:
            reason = e.reason if isinstance(e, (DeliveryError, RetryExhaustedError)) else describe_error(e)
            if outgoing is not None:
                self.dead_letter.send(outgoing, reason)

            record.mark_failed(reason)
            metrics.finish(False, reason)
            logger.error(
                f"Job {job.id} delivery failed: {reason}",
                extra={"error_context": e.to_dict()}
            )
            self._event("job-failure", run_id, job, "orchestrator-failure", error=reason)

        except Exception as e:
            message = describe_error(e)
            record.mark_failed(message)
            metrics.finish(False, message)

            if isinstance(e, ETLException):
                logger.error(f"Job {job.id} failed: {message}", extra={"error_context": e.to_dict()})
            else:
                logger.exception(f"Unexpected error in job {job.id}")
            self._event("job-error", run_id, job, "orchestrator-error", error=message)

        logger.info(f"Job {job.id} metrics: {metrics.summary()}")
        return record
