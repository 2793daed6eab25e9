"""
Pydantic schemas for the HTTP control API.

Modules:
    api: Request and response models for jobs, schedules, executions,
         tapped messages and dead letters
"""

__all__ = [
    "APIResponse",
    "ErrorResponse",
    "HealthCheckResponse",
    "JobSummary",
    "JobRegistrationResponse",
    "ExecutionRecordResponse",
    "JobStatusResponse",
    "StopJobResponse",
    "ScheduleInfo",
    "NextFireTimeResponse",
    "StoredMessageResponse",
    "FailedMessageResponse",
    "MessageListResponse",
    "DeadLetterListResponse",
]
