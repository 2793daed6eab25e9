import enum


# ============================================================================
# ENUMS
# ============================================================================

class MessageKind(str, enum.Enum):
    """Message type tag"""
    DOCUMENT = "document"
    EVENT = "event"
    COMMAND = "command"


class JobStatus(str, enum.Enum):
    """Execution status of one job run"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCESS, JobStatus.FAILED, JobStatus.CANCELLED)


# Returned by status lookups when no execution record exists
UNKNOWN_STATUS = "unknown"


class SourceKind(str, enum.Enum):
    """Relational source types"""
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLSERVER = "sqlserver"


class AuthKind(str, enum.Enum):
    """Authentication modes for HTTP sinks"""
    NONE = "none"
    BEARER = "bearer"
    API_KEY = "api_key"
    BASIC = "basic"


class HttpMethod(str, enum.Enum):
    """HTTP methods accepted by sinks"""
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"


class NullHandling(str, enum.Enum):
    """What the normalizer does with null column values"""
    KEEP = "keep"
    EXCLUDE = "exclude"
    REPLACE = "replace"
