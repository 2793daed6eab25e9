import asyncio

import pytest

from ingestion.scheduler import NOT_AVAILABLE, JobScheduler, build_cron_trigger
from models.job import ScheduleConfig
from tests.stubs import build_job


def _fields(trigger):
    return {field.name: str(field) for field in trigger.fields}


class Dispatcher:
    def __init__(self, error=None):
        self.fired = []
        self.error = error

    async def __call__(self, job):
        self.fired.append(job.id)
        if self.error is not None:
            raise self.error


@pytest.fixture
def dispatcher():
    return Dispatcher()


def test_crontab_weekdays():
    fields = _fields(build_cron_trigger("30 2 * * 1-5", "UTC"))

    assert fields["minute"] == "30"
    assert fields["hour"] == "2"
    assert fields["day_of_week"] == "mon-fri"


def test_crontab_sunday_is_zero_or_seven():
    assert _fields(build_cron_trigger("0 0 * * 0", "UTC"))["day_of_week"] == "sun"
    assert _fields(build_cron_trigger("0 0 * * 7", "UTC"))["day_of_week"] == "sun"


def test_step_values_are_untouched():
    fields = _fields(build_cron_trigger("*/15 * * * *", "UTC"))

    assert fields["minute"] == "*/15"


def test_quartz_expression():
    fields = _fields(build_cron_trigger("0 0 12 ? * 2", "UTC"))

    assert fields["second"] == "0"
    assert fields["hour"] == "12"
    assert fields["day"] == "*"
    assert fields["day_of_week"] == "mon"


def test_quartz_last_day_of_month_with_year():
    fields = _fields(build_cron_trigger("0 30 23 L * ? 2030", "UTC"))

    assert fields["day"] == "last"
    assert fields["year"] == "2030"


@pytest.mark.parametrize("expression", ["not a cron", "61 * * * *", "0 0 * * 9"])
def test_invalid_cron(expression):
    with pytest.raises(ValueError):
        build_cron_trigger(expression, "UTC")


class TestJobScheduler:
    """Test recurring triggers"""

    @pytest.mark.asyncio
    async def test_cron_schedule(self, dispatcher, scheduled_job):
        scheduler = JobScheduler(dispatcher)
        scheduler.start()
        try:
            assert scheduler.schedule_job(scheduled_job) is True
            assert scheduler.is_scheduled("nightly-orders")
            assert scheduler.get_next_fire_time("nightly-orders").endswith("02:00:00+00:00")

            listed = scheduler.get_scheduled_jobs()
            assert listed[0]["job_id"] == "nightly-orders"
            assert listed[0]["paused"] is False
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_schedules_are_rejected(self, dispatcher, source_config, target_config):
        scheduler = JobScheduler(dispatcher)
        scheduler.start()
        try:
            bad_cron = build_job("a", source_config, target_config,
                                 schedule=ScheduleConfig(enabled=True, cron_expression="every day"))
            bad_tz = build_job("b", source_config, target_config,
                               schedule=ScheduleConfig(enabled=True, cron_expression="0 2 * * *",
                                                       timezone="Mars/Olympus_Mons"))
            disabled = build_job("c", source_config, target_config,
                                 schedule=ScheduleConfig(enabled=False, cron_expression="0 2 * * *"))
            empty = build_job("d", source_config, target_config, schedule=ScheduleConfig(enabled=True))

            for job in (bad_cron, bad_tz, disabled, empty):
                assert scheduler.schedule_job(job) is False
                assert not scheduler.is_scheduled(job.id)
                assert scheduler.get_next_fire_time(job.id) == NOT_AVAILABLE
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_cron_wins_over_interval(self, dispatcher, source_config, target_config):
        job = build_job("both", source_config, target_config,
                        schedule=ScheduleConfig(enabled=True, cron_expression="0 2 * * *", interval_seconds=5))
        scheduler = JobScheduler(dispatcher)
        scheduler.start()
        try:
            scheduler.schedule_job(job)
            assert scheduler.get_scheduled_jobs()[0]["trigger"].startswith("cron")
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_interval_fires_immediately_until_unscheduled(self, dispatcher, source_config, target_config):
        job = build_job("every-minute", source_config, target_config,
                        schedule=ScheduleConfig(enabled=True, interval_seconds=60))
        scheduler = JobScheduler(dispatcher)
        scheduler.start()
        try:
            assert scheduler.schedule_job(job) is True
            await asyncio.sleep(0.3)
            assert dispatcher.fired == ["every-minute"]

            assert scheduler.unschedule_job("every-minute") is True
            assert not scheduler.is_scheduled("every-minute")
            assert scheduler.get_next_fire_time("every-minute") == NOT_AVAILABLE
            assert scheduler.unschedule_job("every-minute") is False
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_rescheduling_replaces_trigger(self, dispatcher, scheduled_job):
        scheduler = JobScheduler(dispatcher)
        scheduler.start()
        try:
            scheduler.schedule_job(scheduled_job)
            scheduler.schedule_job(scheduled_job, ScheduleConfig(enabled=True, cron_expression="0 5 * * *"))

            assert len(scheduler.get_scheduled_jobs()) == 1
            assert scheduler.get_next_fire_time("nightly-orders").endswith("05:00:00+00:00")
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, dispatcher, scheduled_job):
        scheduler = JobScheduler(dispatcher)
        scheduler.start()
        try:
            scheduler.schedule_job(scheduled_job)

            assert scheduler.pause_job("nightly-orders") is True
            assert scheduler.get_next_fire_time("nightly-orders") == NOT_AVAILABLE
            assert scheduler.get_scheduled_jobs()[0]["paused"] is True

            assert scheduler.resume_job("nightly-orders") is True
            assert scheduler.get_next_fire_time("nightly-orders") != NOT_AVAILABLE

            assert scheduler.pause_job("ghost") is False
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_fire_skips_missing_job(self, dispatcher):
        scheduler = JobScheduler(dispatcher, job_lookup=lambda job_id: None)

        await scheduler._fire("deleted")

        assert dispatcher.fired == []

    @pytest.mark.asyncio
    async def test_fire_logs_dispatch_errors(self, etl_job):
        failing = Dispatcher(error=RuntimeError("bus down"))
        scheduler = JobScheduler(failing, job_lookup=lambda job_id: etl_job)

        await scheduler._fire(etl_job.id)

        assert failing.fired == [etl_job.id]

    @pytest.mark.asyncio
    async def test_schedule_all_counts_enabled(self, dispatcher, etl_job, scheduled_job):
        scheduler = JobScheduler(dispatcher)
        scheduler.start()
        try:
            assert scheduler.schedule_all([etl_job, scheduled_job]) == 1
        finally:
            scheduler.shutdown()
