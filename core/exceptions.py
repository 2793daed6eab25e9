"""
Custom exceptions for the ETL engine with structured error context.

This module provides the exception hierarchy used by endpoints, transformers,
the retry machinery and the orchestration layer. Each exception carries
context information for debugging and for the error messages recorded on
execution records and dead letter entries.

Exception Hierarchy:
    ETLException (base)
    ├── ConfigurationError
    ├── UnsupportedOperationError
    ├── ExtractionError
    │   ├── DatabaseConnectionError
    │   └── QueryExecutionError
    ├── TransformationError
    │   ├── PipelineError
    │   ├── NormalizationError
    │   └── DataFormatError
    ├── LoadError
    │   ├── DeliveryError
    │   │   ├── TransientDeliveryError
    │   │   │   └── DeliveryTimeoutError
    │   │   └── PermanentDeliveryError
    │   └── RetryExhaustedError
    ├── ControlBusError
    │   └── JobAlreadyRunningError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ETLException(Exception):
    """
    Base exception for all ETL-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (job, endpoint, timestamp, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ETLException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - HTTP 5xx responses
    - Dropped or refused database connections
    """
    pass


class NonRetryableError(ETLException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Invalid job, connection or API descriptors
    - HTTP 4xx responses
    - Malformed payloads
    """
    pass


# ============================================================================
# Configuration / Capability Errors
# ============================================================================

class ConfigurationError(NonRetryableError):
    """
    Exception raised when a job, source, target or schedule descriptor is invalid.

    Context should include:
        - job_id: Job identifier (if known)
        - invalid_fields: Names of the fields that failed validation
    """
    pass


class UnsupportedOperationError(ETLException):
    """
    Exception raised when an operation is not supported by a component.

    Raised by endpoints asked for the wrong capability (a source asked to
    send, a sink asked to extract) and by Control Bus pause/resume.
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for data extraction failures."""
    pass


class DatabaseConnectionError(RetryableError, ExtractionError):
    """
    Relational source unreachable, dropped connection or pool timeout.

    Context should include:
        - source_name: Name of the source descriptor
        - source_kind: Database kind
    """
    pass


class QueryExecutionError(NonRetryableError, ExtractionError):
    """
    Exception raised when the source rejects the query itself.

    Context should include:
        - source_name: Name of the source descriptor
        - query: The query text
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for data transformation failures."""
    pass


class PipelineError(TransformationError):
    """
    Exception raised when a filter aborts the pipeline.

    Attributes:
        filter_name: Name of the transformer that failed
    """

    def __init__(
        self,
        message: str,
        filter_name: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        super().__init__(message, context, original_exception)
        self.filter_name = filter_name
        self.context["filter_name"] = filter_name


class NormalizationError(TransformationError):
    """Exception raised when record normalization fails."""
    pass


class DataFormatError(NonRetryableError, TransformationError):
    """Payload cannot be converted to, or is not, the expected format."""
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for data loading failures."""
    pass


class DeliveryError(LoadError):
    """
    Exception raised when a sink call does not succeed.

    Attributes:
        status_code: HTTP status code (None for transport failures)
        response_body: Response body as returned by the target (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        self.response_body = response_body
        if status_code is not None:
            self.context["status_code"] = status_code

    @property
    def reason(self) -> str:
        """Failure reason as recorded in the dead letter channel."""
        if self.status_code is not None:
            return f"HTTP {self.status_code}: {self.response_body or ''}"
        return self.message


class TransientDeliveryError(RetryableError, DeliveryError):
    """HTTP 5xx or transport failures that should be retried."""
    pass


class DeliveryTimeoutError(TransientDeliveryError):
    """The sink call timed out."""
    pass


class PermanentDeliveryError(NonRetryableError, DeliveryError):
    """HTTP 4xx responses that must not be retried."""
    pass


class RetryExhaustedError(LoadError):
    """
    Exception raised when every attempt of a retried operation failed.

    Attributes:
        attempts: Total number of attempts made
        last_exception: The failure of the final attempt
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        super().__init__(message, context, original_exception)
        self.attempts = attempts
        self.last_exception = original_exception
        self.context["attempts"] = attempts

    @property
    def reason(self) -> str:
        last = self.last_exception
        if isinstance(last, DeliveryError):
            return f"{last.reason} (after {self.attempts} attempts)"
        if last is not None:
            return f"{type(last).__name__}: {last} (after {self.attempts} attempts)"
        return self.message


# ============================================================================
# Control Bus Errors
# ============================================================================

class ControlBusError(ETLException):
    """Base exception for control bus failures."""
    pass


class JobAlreadyRunningError(ControlBusError):
    """Raised when a job is started while a previous run is still active."""
    pass
