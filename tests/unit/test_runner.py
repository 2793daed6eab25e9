"""
Unit tests for the job orchestrator
"""

import asyncio
import json

import pytest

from core.exceptions import ConfigurationError, DatabaseConnectionError, QueryExecutionError
from ingestion.transformers.normalizer import DataNormalizer
from models.base import JobStatus, MessageKind
from models.job import EtlJob
from tests.stubs import StubSink, StubSource, http_error, timeout_error


def _events(message_store):
    return [
        (e.context, e.message.get_header("action"))
        for e in message_store.retrieve_all()
        if e.message.kind == MessageKind.EVENT
    ]


class TestETLRunner:
    """Test Extract → Transform → Load orchestration"""

    @pytest.mark.asyncio
    async def test_successful_run(self, make_runner, etl_job, order_rows, message_store, dead_letter):
        source = StubSource(order_rows)
        sink = StubSink()
        runner = make_runner(source, sink)

        record = await runner.execute(etl_job, run_id="run-1")

        assert record.status == JobStatus.SUCCESS
        assert record.run_id == "run-1"
        assert record.records_processed == 2
        assert record.ended_at is not None
        assert dead_letter.count() == 0

        delivered = sink.delivered[0]
        body = json.loads(delivered.payload)
        assert body[0]["order_id"] == 1
        assert body[0]["total"] == "120.5"
        assert delivered.correlation_id == "run-1"
        assert delivered.get_header("jobId") == "orders-export"

        metrics = record.metrics
        assert metrics.success is True
        assert metrics.records_extracted == metrics.records_transformed == metrics.records_loaded == 2

        assert _events(message_store) == [
            ("orchestrator-start", "job-start"),
            ("orchestrator-success", "job-success"),
        ]

    @pytest.mark.asyncio
    async def test_message_flow_is_tapped_in_order(self, make_runner, etl_job, order_rows, message_store):
        source = StubSource(order_rows)
        runner = make_runner(source, StubSink())

        await runner.execute(etl_job)

        extracted = message_store.retrieve_by_context("orchestrator-extract")[0].message
        contexts = [e.context for e in message_store.history(extracted.id)]
        assert contexts == [
            "orchestrator-extract",
            "pipeline-input",
            "pipeline-filter-normalizer",
            "pipeline-filter-content-enricher",
            "pipeline-filter-json-translator",
            "pipeline-output",
            "orchestrator-transform",
        ]

    @pytest.mark.asyncio
    async def test_disabled_job_is_not_run(self, make_runner, source_config, target_config, message_store):
        source, sink = StubSource([]), StubSink()
        job = EtlJob(
            id="off", name="Off", enabled=False, source_config=source_config,
            query="SELECT 1", target_config=target_config,
        )

        record = await make_runner(source, sink).execute(job)

        assert record.status == JobStatus.CANCELLED
        assert record.error_message == "Job is disabled"
        assert source.extract_calls == 0
        assert sink.deliver_calls == 0
        assert message_store.size() == 0

    @pytest.mark.asyncio
    async def test_invalid_job_raises(self, make_runner, source_config):
        source, sink = StubSource([]), StubSink()
        job = EtlJob(id="broken", name="Broken", source_config=source_config, query="SELECT 1")

        with pytest.raises(ConfigurationError) as exc_info:
            await make_runner(source, sink).execute(job)

        assert "target_config" in exc_info.value.context["invalid_fields"]
        assert source.extract_calls == 0

    @pytest.mark.asyncio
    async def test_client_error_is_dead_lettered_without_retry(
        self, make_runner, etl_job, order_rows, dead_letter, sleep_recorder, message_store
    ):
        sink = StubSink([http_error(404, "no such endpoint")])
        runner = make_runner(StubSource(order_rows), sink)

        record = await runner.execute(etl_job, run_id="run-404")

        assert record.status == JobStatus.FAILED
        assert record.error_message == "HTTP 404: no such endpoint"
        assert sink.deliver_calls == 1
        assert sleep_recorder.delays == []

        failed = dead_letter.failed_messages()
        assert len(failed) == 1
        assert failed[0].reason == "HTTP 404: no such endpoint"
        assert failed[0].message.correlation_id == "run-404"
        assert json.loads(failed[0].message.payload)[1]["customer_name"] == "Grace"
        assert ("orchestrator-failure", "job-failure") in _events(message_store)

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, make_runner, etl_job, order_rows, dead_letter, sleep_recorder):
        sink = StubSink([timeout_error(), timeout_error(), 200])
        runner = make_runner(StubSource(order_rows), sink)

        record = await runner.execute(etl_job)

        assert record.status == JobStatus.SUCCESS
        assert sink.deliver_calls == 3
        assert sleep_recorder.delays == [0.01, 0.02]
        assert dead_letter.count() == 0

    @pytest.mark.asyncio
    async def test_retry_exhaustion_is_dead_lettered(self, make_runner, etl_job, order_rows, dead_letter):
        sink = StubSink([http_error(503, "maintenance")] * 10)
        runner = make_runner(StubSource(order_rows), sink)

        record = await runner.execute(etl_job)

        assert record.status == JobStatus.FAILED
        assert sink.deliver_calls == 4
        assert dead_letter.failed_messages()[0].reason == "HTTP 503: maintenance (after 4 attempts)"

    @pytest.mark.asyncio
    async def test_transient_extract_failure_reconnects_once(self, make_runner, etl_job, order_rows):
        source = StubSource(order_rows, failures=[DatabaseConnectionError("connection reset")])
        runner = make_runner(source, StubSink())

        record = await runner.execute(etl_job)

        assert record.status == JobStatus.SUCCESS
        assert source.reconnect_calls == 1
        assert source.extract_calls == 2

    @pytest.mark.asyncio
    async def test_second_extract_failure_fails_job(self, make_runner, etl_job, dead_letter, message_store):
        source = StubSource([], failures=[DatabaseConnectionError("down"), DatabaseConnectionError("still down")])
        sink = StubSink()

        record = await make_runner(source, sink).execute(etl_job)

        assert record.status == JobStatus.FAILED
        assert "DatabaseConnectionError" in record.error_message
        assert source.reconnect_calls == 1
        assert sink.deliver_calls == 0
        assert dead_letter.count() == 0
        assert ("orchestrator-error", "job-error") in _events(message_store)

    @pytest.mark.asyncio
    async def test_query_error_is_not_retried(self, make_runner, etl_job):
        source = StubSource([], failures=[QueryExecutionError("syntax error")])

        record = await make_runner(source, StubSink()).execute(etl_job)

        assert record.status == JobStatus.FAILED
        assert source.reconnect_calls == 0

    @pytest.mark.asyncio
    async def test_transformer_failure(self, make_runner, etl_job, dead_letter, monkeypatch):
        def explode(self, record):
            raise ZeroDivisionError("division by zero")

        monkeypatch.setattr(DataNormalizer, "normalize_record", explode)
        sink = StubSink()
        runner = make_runner(StubSource([{"id": 1}]), sink)

        record = await runner.execute(etl_job)

        assert record.status == JobStatus.FAILED
        assert "PipelineError" in record.error_message
        assert sink.deliver_calls == 0
        assert dead_letter.count() == 0

    @pytest.mark.asyncio
    async def test_cancellation_is_recorded_and_propagated(self, make_runner, etl_job, order_rows, message_store):
        source = StubSource(order_rows, delay=3600)
        runner = make_runner(source, StubSink())

        task = asyncio.create_task(runner.execute(etl_job, run_id="run-c"))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert ("orchestrator-cancelled", "job-cancelled") in _events(message_store)

    @pytest.mark.asyncio
    async def test_transform_options_from_job(self, make_runner, source_config, target_config):
        sink = StubSink()
        job = EtlJob(
            id="pretty", name="Pretty", source_config=source_config, query="SELECT 1",
            target_config=target_config,
            transform_options={"prettyPrint": "true", "normalizeColumnNames": False},
        )

        await make_runner(StubSource([{"Order ID": 7}]), sink).execute(job)

        assert sink.delivered[0].payload == '[\n  {\n    "Order ID": 7\n  }\n]'
