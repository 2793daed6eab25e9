"""
Pydantic schemas for API request/response models
"""

from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from messaging.dead_letter import FailedMessage
from messaging.message_store import StoredMessage
from models.execution import ExecutionRecord
from models.message import to_jsonable

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class APIResponse(BaseModel, Generic[T]):
    request_id: str
    api_latency_ms: int
    data: T


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    context: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Engine liveness"""
    status: str = Field(..., description="healthy when the engine and its scheduler are running")
    timestamp: datetime = Field(default_factory=_utcnow)
    environment: str
    scheduler_running: bool
    scheduled_jobs: int = 0
    active_executions: int = 0
    message_store_size: int = 0
    dead_letter_count: int = 0

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "environment": "production",
                "scheduler_running": True,
                "scheduled_jobs": 4,
                "active_executions": 1,
                "message_store_size": 312,
                "dead_letter_count": 0,
            }
        }
    )


# ============================================================================
# Job Schemas
# ============================================================================

class JobSummary(BaseModel):
    """Job definition without credentials"""
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    enabled: bool
    source_name: Optional[str] = None
    target_name: Optional[str] = None
    scheduled: bool = False
    next_fire_time: str = "N/A"


class JobRegistrationResponse(BaseModel):
    job_id: str
    scheduled: bool


class ExecutionRecordResponse(BaseModel):
    job_id: str
    run_id: str
    status: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    records_processed: int = 0
    error_message: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None

    @classmethod
    def from_record(cls, record: ExecutionRecord) -> "ExecutionRecordResponse":
        return cls(
            job_id=record.job_id,
            run_id=record.run_id,
            status=record.status.value,
            started_at=record.started_at,
            ended_at=record.ended_at,
            records_processed=record.records_processed,
            error_message=record.error_message,
            metrics=record.metrics.summary() if record.metrics is not None else None,
        )


class JobStatusResponse(BaseModel):
    job_id: str
    status: str = Field(..., description="pending, running, success, failed, cancelled or unknown")
    execution: Optional[ExecutionRecordResponse] = None


class StopJobResponse(BaseModel):
    job_id: str
    stopped: bool


# ============================================================================
# Schedule Schemas
# ============================================================================

class ScheduleInfo(BaseModel):
    job_id: str
    name: Optional[str] = None
    trigger: str
    next_fire_time: str
    paused: bool = False


class NextFireTimeResponse(BaseModel):
    job_id: str
    next_fire_time: str


# ============================================================================
# Message Store / Dead Letter Schemas
# ============================================================================

class StoredMessageResponse(BaseModel):
    message_id: str
    correlation_id: Optional[str] = None
    context: str
    observed_at: datetime
    kind: str
    headers: Dict[str, str] = Field(default_factory=dict)
    payload: Any = None

    @classmethod
    def from_entry(cls, entry: StoredMessage) -> "StoredMessageResponse":
        return cls(
            message_id=entry.message.id,
            correlation_id=entry.message.correlation_id,
            context=entry.context,
            observed_at=entry.observed_at,
            kind=entry.message.kind.value,
            headers=dict(entry.message.headers),
            payload=to_jsonable(entry.message.payload),
        )


class FailedMessageResponse(BaseModel):
    message_id: str
    correlation_id: Optional[str] = None
    reason: str
    failed_at: datetime
    headers: Dict[str, str] = Field(default_factory=dict)
    payload: Any = None

    @classmethod
    def from_entry(cls, entry: FailedMessage) -> "FailedMessageResponse":
        return cls(
            message_id=entry.message.id,
            correlation_id=entry.message.correlation_id,
            reason=entry.reason,
            failed_at=entry.failed_at,
            headers=dict(entry.message.headers),
            payload=to_jsonable(entry.message.payload),
        )


class MessageListResponse(BaseModel):
    total: int
    messages: List[StoredMessageResponse]


class DeadLetterListResponse(BaseModel):
    total: int
    failed_messages: List[FailedMessageResponse]
