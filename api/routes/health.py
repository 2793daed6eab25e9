"""
Health check endpoint with engine status
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_engine
from ingestion.engine import EtlEngine
from schemas.api import HealthCheckResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(engine: EtlEngine = Depends(get_engine)):
    """
    Health check endpoint.

    Returns:
    - Scheduler state and number of scheduled jobs
    - Active executions on the control bus
    - Message store size and dead letter count
    """
    scheduler_running = engine.scheduler.running

    return HealthCheckResponse(
        status="healthy" if engine.started and scheduler_running else "degraded",
        environment=engine.settings.ENVIRONMENT,
        scheduler_running=scheduler_running,
        scheduled_jobs=len(engine.scheduler.get_scheduled_jobs()),
        active_executions=engine.control_bus.active_count,
        message_store_size=engine.message_store.size(),
        dead_letter_count=engine.dead_letter.count(),
    )
