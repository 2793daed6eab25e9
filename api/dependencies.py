"""
Request dependencies shared by the routers
"""

import time
import uuid
from typing import Optional, TypeVar

from fastapi import Depends, Header, HTTPException, Request, status

from ingestion.engine import EtlEngine
from models.job import EtlJob
from schemas.api import APIResponse

T = TypeVar("T")


def get_engine(request: Request) -> EtlEngine:
    return request.app.state.engine


async def verify_api_key(
    engine: EtlEngine = Depends(get_engine),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key")
):
    """Require X-API-Key when an API key is configured."""
    expected = engine.settings.API_KEY
    if expected and x_api_key != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key"
        )


def require_job(job_id: str, engine: EtlEngine = Depends(get_engine)) -> EtlJob:
    job = engine.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")
    return job


def envelope(request: Request, data: T) -> APIResponse[T]:
    """Wrap data with the request id and latency set by RequestContextMiddleware."""
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    started_at = getattr(request.state, "started_at", time.perf_counter())
    return APIResponse(
        request_id=request_id,
        api_latency_ms=int((time.perf_counter() - started_at) * 1000),
        data=data,
    )
