"""
Pydantic domain models for the ETL engine.

Models:
    base: Shared enums (MessageKind, JobStatus, SourceKind, AuthKind, HttpMethod, NullHandling)
    message: The Message envelope flowing through endpoints and pipelines
    job: Source, target, schedule and job descriptors
    transform: Typed transformer options
    execution: ExecutionRecord and ExecutionMetrics

Usage:
    from models import EtlJob, Message, ExecutionRecord
    from models.base import JobStatus

Example:
    job = EtlJob(
        id="orders",
        name="Orders export",
        source_config=SourceConfig(name="erp", kind="postgresql", host="db", port=5432,
                                   database="erp", username="etl"),
        query="SELECT * FROM orders WHERE updated_at > ?",
        query_parameters={"since": "2024-01-01"},
        target_config=TargetConfig(name="crm", base_url="https://crm.example.com",
                                   endpoint="/api/orders"),
    )
    assert job.is_valid()
"""

from models.base import (
    AuthKind,
    HttpMethod,
    JobStatus,
    MessageKind,
    NullHandling,
    SourceKind,
    UNKNOWN_STATUS,
)
from models.execution import ExecutionMetrics, ExecutionRecord
from models.job import EtlJob, ScheduleConfig, SourceConfig, TargetConfig
from models.message import Message
from models.transform import (
    EnricherOptions,
    NormalizerOptions,
    TransformOptions,
    TranslatorOptions,
)

__all__ = [
    "AuthKind",
    "HttpMethod",
    "JobStatus",
    "MessageKind",
    "NullHandling",
    "SourceKind",
    "UNKNOWN_STATUS",
    "Message",
    "EtlJob",
    "SourceConfig",
    "TargetConfig",
    "ScheduleConfig",
    "TransformOptions",
    "NormalizerOptions",
    "EnricherOptions",
    "TranslatorOptions",
    "ExecutionRecord",
    "ExecutionMetrics",
]
