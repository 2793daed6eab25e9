"""
Job registration and control bus commands
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from api.dependencies import envelope, get_engine, require_job, verify_api_key
from ingestion.engine import EtlEngine
from models.base import JobStatus
from models.job import EtlJob
from schemas.api import (
    APIResponse,
    ExecutionRecordResponse,
    JobRegistrationResponse,
    JobStatusResponse,
    JobSummary,
    StopJobResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["Jobs"], dependencies=[Depends(verify_api_key)])


def _summary(engine: EtlEngine, job: EtlJob) -> JobSummary:
    return JobSummary(
        id=job.id,
        name=job.name,
        description=job.description,
        enabled=job.enabled,
        source_name=job.source_config.name if job.source_config else None,
        target_name=job.target_config.name if job.target_config else None,
        scheduled=engine.scheduler.is_scheduled(job.id),
        next_fire_time=engine.scheduler.get_next_fire_time(job.id),
    )


@router.get("", response_model=APIResponse[List[JobSummary]])
async def list_jobs(request: Request, engine: EtlEngine = Depends(get_engine)):
    jobs = sorted(engine.list_jobs(), key=lambda j: j.id or "")
    return envelope(request, [_summary(engine, job) for job in jobs])


@router.post("", response_model=JobRegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register_job(job: EtlJob, engine: EtlEngine = Depends(get_engine)):
    """Store a job definition and install its schedule. Invalid definitions get 422."""
    scheduled = engine.register_job(job)
    logger.info(f"Registered job {job.id} (scheduled={scheduled})")
    return JobRegistrationResponse(job_id=job.id, scheduled=scheduled)


@router.get("/{job_id}", response_model=JobSummary)
async def get_job(job: EtlJob = Depends(require_job), engine: EtlEngine = Depends(get_engine)):
    return _summary(engine, job)


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(job_id: str, engine: EtlEngine = Depends(get_engine)):
    if not engine.remove_job(job_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{job_id}/run", response_model=ExecutionRecordResponse, status_code=status.HTTP_202_ACCEPTED)
async def run_job(job: EtlJob = Depends(require_job), engine: EtlEngine = Depends(get_engine)):
    """Start a run through the control bus. 409 if the job is already running."""
    record = await engine.submit_job(job)
    return ExecutionRecordResponse.from_record(record)


@router.post("/{job_id}/stop", response_model=StopJobResponse)
async def stop_job(job_id: str, engine: EtlEngine = Depends(get_engine)):
    return StopJobResponse(job_id=job_id, stopped=engine.control_bus.stop_job(job_id))


@router.get("/{job_id}/status", response_model=JobStatusResponse)
async def job_status(job_id: str, engine: EtlEngine = Depends(get_engine)):
    current = engine.control_bus.get_status(job_id)
    record = engine.control_bus.get_record(job_id)
    return JobStatusResponse(
        job_id=job_id,
        status=current.value if isinstance(current, JobStatus) else current,
        execution=ExecutionRecordResponse.from_record(record) if record is not None else None,
    )


@router.post("/{job_id}/pause")
async def pause_job(job_id: str, engine: EtlEngine = Depends(get_engine)):
    engine.control_bus.pause_job(job_id)


@router.post("/{job_id}/resume")
async def resume_job(job_id: str, engine: EtlEngine = Depends(get_engine)):
    engine.control_bus.resume_job(job_id)
