"""
Pytest configuration and fixtures
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from core.config import Settings
from core.database import ConnectionManager
from core.http import HttpClientPool
from ingestion.endpoints.base import MessageEndpoint
from ingestion.runner import ETLRunner
from messaging.dead_letter import DeadLetterChannel
from messaging.message_store import MessageStore
from messaging.wire_tap import WireTap
from models.job import EtlJob, ScheduleConfig, SourceConfig, TargetConfig
from tests.stubs import SleepRecorder, build_job


# ============================================================================
# Descriptors
# ============================================================================

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        ENVIRONMENT="test",
        DATA_DIR=str(tmp_path / "data"),
        MESSAGE_STORE_PERSIST=False,
        DEAD_LETTER_PERSIST=False,
        SOURCE_RECONNECT_DELAY_SECONDS=0.0,
        CONTROL_BUS_RETENTION_SECONDS=60.0,
        API_KEY=None,
    )


@pytest.fixture
def source_config() -> SourceConfig:
    return SourceConfig(
        name="erp",
        kind="postgresql",
        host="db.internal",
        port=5432,
        database="erp",
        username="etl",
        password="secret",
    )


@pytest.fixture
def target_config() -> TargetConfig:
    return TargetConfig(
        name="crm",
        base_url="https://api.example.com",
        endpoint="/orders",
        method="POST",
        auth_type="bearer",
        auth_token="token-123",
        max_retries=3,
        retry_delay_seconds=0.01,
    )


@pytest.fixture
def etl_job(source_config, target_config) -> EtlJob:
    return build_job("orders-export", source_config, target_config)


@pytest.fixture
def scheduled_job(source_config, target_config) -> EtlJob:
    return build_job(
        "nightly-orders",
        source_config,
        target_config,
        schedule=ScheduleConfig(enabled=True, cron_expression="0 2 * * *"),
    )


@pytest.fixture
def order_rows() -> List[Dict[str, Any]]:
    return [
        {
            "Order ID": 1,
            "Customer Name": "Ada",
            "Total": Decimal("120.500"),
            "Placed On": date(2024, 1, 15),
            "Updated At": datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
            "Notes": None,
        },
        {
            "Order ID": 2,
            "Customer Name": "Grace",
            "Total": Decimal("99.99"),
            "Placed On": date(2024, 1, 16),
            "Updated At": datetime(2024, 1, 16, 8, 0, tzinfo=timezone.utc),
            "Notes": "rush",
        },
    ]


# ============================================================================
# Engine pieces
# ============================================================================

@pytest.fixture
def message_store() -> MessageStore:
    return MessageStore(max_messages=1000)


@pytest.fixture
def wire_tap(message_store) -> WireTap:
    return WireTap(message_store)


@pytest.fixture
def dead_letter() -> DeadLetterChannel:
    return DeadLetterChannel(persist=False)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_runner(test_settings, wire_tap, dead_letter, sleep_recorder):
    """Factory for runners wired to stub endpoints."""

    def factory(source: MessageEndpoint, sink: MessageEndpoint, sinks: Optional[Dict[str, MessageEndpoint]] = None):
        return ETLRunner(
            ConnectionManager(test_settings),
            HttpClientPool(test_settings),
            wire_tap=wire_tap,
            dead_letter=dead_letter,
            settings=test_settings,
            source_factory=lambda job: source,
            sink_factory=lambda job: (sinks or {}).get(job.id, sink),
            sleep=sleep_recorder,
        )

    return factory
