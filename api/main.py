"""
FastAPI application initialization
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from api.middleware import RequestContextMiddleware
from api.routes import health, jobs, messages, schedules
from core.config import Settings, settings as default_settings
from core.exceptions import (
    ConfigurationError,
    ETLException,
    JobAlreadyRunningError,
    UnsupportedOperationError,
)
from core.logging import setup_logging
from ingestion.engine import EtlEngine
from schemas.api import ErrorResponse

logger = logging.getLogger(__name__)

# Domain errors surfaced by the routers
_ERROR_STATUS = {
    ConfigurationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    UnsupportedOperationError: status.HTTP_501_NOT_IMPLEMENTED,
    JobAlreadyRunningError: status.HTTP_409_CONFLICT,
    ETLException: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error_handler(status_code: int):
    async def handler(request: Request, exc: ETLException):
        body = ErrorResponse(
            error_type=type(exc).__name__,
            message=exc.message,
            context={k: str(v) for k, v in exc.context.items()},
        )
        return JSONResponse(status_code=status_code, content=body.model_dump())
    return handler


def create_app(engine: Optional[EtlEngine] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the control API around one engine.

    The engine is started and stopped with the application lifespan.
    """
    settings = settings or (engine.settings if engine is not None else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL)
        logger.info("Starting Conduit ETL engine API")
        logger.info(f"Environment: {settings.ENVIRONMENT}")

        app.state.engine = engine or EtlEngine(settings)
        await app.state.engine.start()
        try:
            yield
        finally:
            logger.info("Shutting down Conduit ETL engine API")
            await app.state.engine.shutdown()

    app = FastAPI(
        title="Conduit ETL Engine API",
        description="Control surface for ETL jobs, schedules, tapped messages and dead letters",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)

    for exc_class, status_code in _ERROR_STATUS.items():
        app.add_exception_handler(exc_class, _error_handler(status_code))

    app.include_router(health.router)
    app.include_router(jobs.router)
    app.include_router(schedules.router)
    app.include_router(messages.router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Conduit ETL Engine API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "jobs": "/jobs",
                "schedules": "/schedules",
                "messages": "/messages",
                "dead_letters": "/dead-letters",
            }
        }

    return app


app = create_app()
