"""
Core utilities and configuration for the Conduit ETL engine.

This package provides foundational components used throughout the engine:

Modules:
    config: Application configuration and environment variable management
    database: Lazily created async SQLAlchemy engines per relational source
    http: Shared httpx clients per HTTP sink
    exceptions: Custom exception hierarchy for error handling
    locks: Read/write lock guarding the shared stores
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import ConnectionManager
    from core.exceptions import DatabaseConnectionError, PermanentDeliveryError
    from core.logging import setup_logging

Example:
    setup_logging()

    connections = ConnectionManager(settings)
    rows = await connections.fetch_rows(source, "SELECT * FROM orders WHERE id > ?", [100])
    await connections.close_all()
"""

__all__ = [
    "settings",
    "setup_logging",
    "ConnectionManager",
    "HttpClientPool",
    "ReadWriteLock",
    # Exceptions
    "ETLException",
    "RetryableError",
    "NonRetryableError",
    "ConfigurationError",
    "UnsupportedOperationError",
    "ExtractionError",
    "DatabaseConnectionError",
    "QueryExecutionError",
    "TransformationError",
    "PipelineError",
    "NormalizationError",
    "DataFormatError",
    "LoadError",
    "DeliveryError",
    "TransientDeliveryError",
    "DeliveryTimeoutError",
    "PermanentDeliveryError",
    "RetryExhaustedError",
    "ControlBusError",
    "JobAlreadyRunningError",
]
