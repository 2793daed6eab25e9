"""
Integration tests: engine, control bus, runner and scheduler together
"""

import asyncio
import random

import pytest

from core.exceptions import ConfigurationError, JobAlreadyRunningError
from ingestion.engine import EtlEngine
from ingestion.repository import InMemoryJobRepository
from models.base import JobStatus, UNKNOWN_STATUS
from models.job import EtlJob, ScheduleConfig
from tests.stubs import StubSink, StubSource, build_job, http_error


@pytest.fixture
def make_engine(test_settings, message_store, wire_tap, dead_letter, make_runner):
    """Engine whose runner talks to stub endpoints."""
    def factory(source, sink, jobs=None, sinks=None):
        engine = EtlEngine(
            test_settings,
            InMemoryJobRepository(jobs),
            message_store=message_store,
            wire_tap=wire_tap,
            dead_letter=dead_letter,
            runner=make_runner(source, sink, sinks),
        )
        return engine

    return factory


async def _wait_for(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_submit_runs_job_to_success(make_engine, etl_job, order_rows, message_store):
    sink = StubSink()
    engine = make_engine(StubSource(order_rows), sink, [etl_job])
    await engine.start()
    try:
        record = await engine.run_job(etl_job.id)
        assert record.status in (JobStatus.PENDING, JobStatus.RUNNING)

        await engine.control_bus.get_task(etl_job.id)
        await _wait_for(lambda: engine.control_bus.get_status(etl_job.id) == JobStatus.SUCCESS)

        final = engine.control_bus.get_record(etl_job.id)
        assert final.run_id == record.run_id
        assert final.records_processed == 2
        assert final.metrics.records_loaded == 2

        # The runner's correlation id is the control bus run id
        delivered = sink.delivered[0]
        assert delivered.correlation_id == record.run_id
        assert message_store.retrieve_by_context("orchestrator-success")[0].message.correlation_id == record.run_id
    finally:
        await engine.shutdown()


@pytest.mark.asyncio
async def test_run_unknown_job(make_engine):
    engine = make_engine(StubSource([]), StubSink())

    assert await engine.run_job("ghost") is None
    assert engine.control_bus.get_status("ghost") == UNKNOWN_STATUS


@pytest.mark.asyncio
async def test_invalid_job_is_not_submitted(make_engine, source_config):
    engine = make_engine(StubSource([]), StubSink())
    job = EtlJob(id="broken", name="Broken", source_config=source_config)

    with pytest.raises(ConfigurationError):
        await engine.submit_job(job)

    assert engine.control_bus.get_status("broken") == UNKNOWN_STATUS


@pytest.mark.asyncio
async def test_second_submit_while_running_is_rejected(make_engine, etl_job, order_rows):
    engine = make_engine(StubSource(order_rows, delay=0.2), StubSink(), [etl_job])
    await engine.start()
    try:
        await engine.run_job(etl_job.id)

        with pytest.raises(JobAlreadyRunningError):
            await engine.run_job(etl_job.id)
    finally:
        await engine.shutdown()


@pytest.mark.asyncio
async def test_delivery_failure_surfaces_in_status(make_engine, etl_job, order_rows, dead_letter):
    engine = make_engine(StubSource(order_rows), StubSink([http_error(422, "bad payload")]), [etl_job])

    await engine.run_job(etl_job.id)
    await engine.control_bus.get_task(etl_job.id)
    await _wait_for(lambda: engine.control_bus.get_task(etl_job.id) is None)

    record = engine.control_bus.get_record(etl_job.id)
    assert record.status == JobStatus.FAILED
    assert record.error_message == "HTTP 422: bad payload"
    assert dead_letter.count() == 1
    assert dead_letter.failed_messages()[0].message.correlation_id == record.run_id


@pytest.mark.asyncio
async def test_concurrent_runs_with_cancellations(make_engine, source_config, target_config, order_rows):
    jobs = [build_job(f"job-{i}", source_config, target_config) for i in range(50)]
    engine = make_engine(StubSource(order_rows, delay=0.2), StubSink(delay=0.05), jobs)
    await engine.start()
    try:
        for job in jobs:
            await engine.submit_job(job)
        await asyncio.sleep(0.05)

        cancelled = {job.id for job in random.sample(jobs, 10)}
        for job_id in cancelled:
            assert engine.control_bus.stop_job(job_id) is True

        tasks = [t for t in (engine.control_bus.get_task(job.id) for job in jobs) if t is not None]
        await asyncio.gather(*tasks, return_exceptions=True)
        await _wait_for(lambda: engine.control_bus.active_count == 0)

        statuses = {job.id: engine.control_bus.get_status(job.id) for job in jobs}
        assert {job_id for job_id, s in statuses.items() if s == JobStatus.CANCELLED} == cancelled
        assert all(s == JobStatus.SUCCESS for job_id, s in statuses.items() if job_id not in cancelled)
        assert not any(s in (JobStatus.PENDING, JobStatus.RUNNING) for s in statuses.values())
    finally:
        await engine.shutdown()


@pytest.mark.asyncio
async def test_one_failing_job_does_not_affect_others(make_engine, source_config, target_config, order_rows):
    good = build_job("good", source_config, target_config)
    bad = build_job("bad", source_config, target_config)
    sinks = {"bad": StubSink([http_error(400, "nope")])}
    engine = make_engine(StubSource(order_rows), StubSink(), [good, bad], sinks=sinks)

    await engine.run_job("good")
    await engine.run_job("bad")
    await asyncio.gather(engine.control_bus.get_task("good"), engine.control_bus.get_task("bad"))
    await _wait_for(lambda: engine.control_bus.active_count == 0)

    assert engine.control_bus.get_status("good") == JobStatus.SUCCESS
    assert engine.control_bus.get_status("bad") == JobStatus.FAILED


@pytest.mark.asyncio
async def test_scheduled_job_fires_through_control_bus(make_engine, source_config, target_config, order_rows):
    job = build_job(
        "every-minute", source_config, target_config,
        schedule=ScheduleConfig(enabled=True, interval_seconds=60),
    )
    sink = StubSink()
    engine = make_engine(StubSource(order_rows), sink)
    await engine.start()
    try:
        assert engine.register_job(job) is True
        await _wait_for(lambda: engine.control_bus.get_status("every-minute") == JobStatus.SUCCESS)

        assert sink.deliver_calls == 1
        assert engine.scheduler.get_next_fire_time("every-minute") != "N/A"

        assert engine.remove_job("every-minute") is True
        assert not engine.scheduler.is_scheduled("every-minute")
        assert engine.get_job("every-minute") is None
    finally:
        await engine.shutdown()


@pytest.mark.asyncio
async def test_start_schedules_stored_jobs(make_engine, etl_job, scheduled_job):
    engine = make_engine(StubSource([]), StubSink(), [etl_job, scheduled_job])

    assert await engine.start() == 1
    assert engine.started
    assert engine.scheduler.is_scheduled(scheduled_job.id)

    await engine.shutdown()
    assert not engine.started
    assert not engine.scheduler.running


@pytest.mark.asyncio
async def test_register_without_schedule_unschedules(make_engine, scheduled_job):
    engine = make_engine(StubSource([]), StubSink())
    await engine.start()
    try:
        assert engine.register_job(scheduled_job) is True

        unscheduled = scheduled_job.model_copy(update={"schedule": None})
        assert engine.register_job(unscheduled) is False
        assert not engine.scheduler.is_scheduled(scheduled_job.id)
        assert engine.get_job(scheduled_job.id).schedule is None
    finally:
        await engine.shutdown()


@pytest.mark.asyncio
async def test_shutdown_cancels_running_jobs(make_engine, etl_job, order_rows):
    engine = make_engine(StubSource(order_rows, delay=3600), StubSink(), [etl_job])
    await engine.start()

    await engine.run_job(etl_job.id)
    await asyncio.sleep(0.01)
    await engine.shutdown()

    assert engine.control_bus.get_status(etl_job.id) == JobStatus.CANCELLED
