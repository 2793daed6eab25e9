"""
Scheduler triggers
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from api.dependencies import envelope, get_engine, verify_api_key
from ingestion.engine import EtlEngine
from schemas.api import APIResponse, NextFireTimeResponse, ScheduleInfo

router = APIRouter(prefix="/schedules", tags=["Schedules"], dependencies=[Depends(verify_api_key)])


def _not_scheduled(job_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} is not scheduled")


@router.get("", response_model=APIResponse[List[ScheduleInfo]])
async def list_schedules(request: Request, engine: EtlEngine = Depends(get_engine)):
    schedules = [ScheduleInfo(**info) for info in engine.scheduler.get_scheduled_jobs()]
    return envelope(request, schedules)


@router.post("/{job_id}/pause", response_model=NextFireTimeResponse)
async def pause_schedule(job_id: str, engine: EtlEngine = Depends(get_engine)):
    if not engine.scheduler.pause_job(job_id):
        raise _not_scheduled(job_id)
    return NextFireTimeResponse(job_id=job_id, next_fire_time=engine.scheduler.get_next_fire_time(job_id))


@router.post("/{job_id}/resume", response_model=NextFireTimeResponse)
async def resume_schedule(job_id: str, engine: EtlEngine = Depends(get_engine)):
    if not engine.scheduler.resume_job(job_id):
        raise _not_scheduled(job_id)
    return NextFireTimeResponse(job_id=job_id, next_fire_time=engine.scheduler.get_next_fire_time(job_id))


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unschedule(job_id: str, engine: EtlEngine = Depends(get_engine)):
    if not engine.scheduler.unschedule_job(job_id):
        raise _not_scheduled(job_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{job_id}/next-fire-time", response_model=NextFireTimeResponse)
async def next_fire_time(job_id: str, engine: EtlEngine = Depends(get_engine)):
    return NextFireTimeResponse(job_id=job_id, next_fire_time=engine.scheduler.get_next_fire_time(job_id))
