"""
Execution tracking: one ExecutionRecord per job run plus its stage metrics
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
import uuid

from pydantic import BaseModel, Field

from models.base import JobStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionMetrics(BaseModel):
    """Per-stage durations (ms) and record counts of one run"""

    job_id: Optional[str] = None
    run_id: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None

    extract_duration_ms: float = 0.0
    transform_duration_ms: float = 0.0
    load_duration_ms: float = 0.0

    records_extracted: int = 0
    records_transformed: int = 0
    records_loaded: int = 0

    success: bool = False
    error_message: Optional[str] = None

    @property
    def total_duration_ms(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds() * 1000

    def finish(self, success: bool, error_message: Optional[str] = None):
        self.ended_at = _utcnow()
        self.success = success
        self.error_message = error_message

    def summary(self) -> Dict[str, Any]:
        return {
            "extract_ms": round(self.extract_duration_ms, 2),
            "transform_ms": round(self.transform_duration_ms, 2),
            "load_ms": round(self.load_duration_ms, 2),
            "total_ms": round(self.total_duration_ms, 2),
            "records_extracted": self.records_extracted,
            "records_transformed": self.records_transformed,
            "records_loaded": self.records_loaded,
            "success": self.success,
        }


class ExecutionRecord(BaseModel):
    """
    State of one job run: Pending → Running → {Success, Failed, Cancelled}.

    Owned by whoever created it (the Control Bus for submitted runs, the
    runner for direct calls). Terminal transitions stamp ``ended_at``.
    """

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_id: str
    status: JobStatus = JobStatus.PENDING
    started_at: datetime = Field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    records_processed: int = 0
    error_message: Optional[str] = None
    metrics: Optional[ExecutionMetrics] = None

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal

    def mark_running(self):
        self.status = JobStatus.RUNNING
        self.started_at = _utcnow()

    def mark_success(self, records_processed: int = 0):
        self.status = JobStatus.SUCCESS
        self.records_processed = records_processed
        self.ended_at = _utcnow()

    def mark_failed(self, error_message: Optional[str]):
        self.status = JobStatus.FAILED
        self.error_message = error_message
        self.ended_at = _utcnow()

    def mark_cancelled(self, reason: Optional[str] = None):
        self.status = JobStatus.CANCELLED
        if reason:
            self.error_message = reason
        self.ended_at = _utcnow()

    def __str__(self) -> str:
        return (
            f"ExecutionRecord(job_id={self.job_id}, run_id={self.run_id}, "
            f"status={self.status.value}, records={self.records_processed})"
        )
