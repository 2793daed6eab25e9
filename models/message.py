"""
Message envelope flowing through endpoints, pipelines and the wire tap
"""

import base64
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic_core import to_jsonable_python

from models.base import MessageKind


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode_binary(value: Any) -> Any:
    """Standard-alphabet base64 for binary values, anywhere in lists and dicts."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, dict):
        return {k: _encode_binary(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_encode_binary(v) for v in value]
    return value


def to_jsonable(value: Any) -> Any:
    """JSON-compatible form of a payload: dates ISO, decimals str, bytes base64."""
    return to_jsonable_python(_encode_binary(value), serialize_unknown=True)


class Message(BaseModel):
    """
    Envelope carrying a payload, headers, a correlation id and a type tag.

    ``id`` and ``created_at`` are fixed at construction. Transformers that
    produce a new instance must use :meth:`continue_with` so the identity
    travels with the flow and the wire tap can correlate pipeline stages.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    id: str = Field(default_factory=_new_id, frozen=True)
    created_at: datetime = Field(default_factory=_utcnow, frozen=True)
    correlation_id: Optional[str] = None
    kind: MessageKind = MessageKind.DOCUMENT
    payload: Any = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def with_correlation(cls, correlation_id: str, payload: Any = None, **kwargs) -> "Message":
        return cls(correlation_id=correlation_id, payload=payload, **kwargs)

    @classmethod
    def event(cls, action: str, correlation_id: Optional[str] = None, **headers: Any) -> "Message":
        """Lifecycle event message (job-start, job-success, ...)."""
        message = cls(kind=MessageKind.EVENT, correlation_id=correlation_id)
        message.add_header("action", action)
        for key, value in headers.items():
            if value is not None:
                message.add_header(key, value)
        return message

    def continue_with(self, payload: Any) -> "Message":
        """New message for the next stage of the same flow."""
        return Message(
            id=self.id,
            created_at=self.created_at,
            correlation_id=self.correlation_id,
            kind=self.kind,
            payload=payload,
            headers=dict(self.headers),
        )

    def add_header(self, key: str, value: Any):
        self.headers[key] = str(value)

    def get_header(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(key, default)

    def record_count(self) -> int:
        """Number of records carried: list length, else the recordCount header."""
        if isinstance(self.payload, list):
            return len(self.payload)
        header = self.headers.get("recordCount")
        if header is not None:
            try:
                return int(header)
            except ValueError:
                return 0
        return 0

    def __str__(self) -> str:
        return (
            f"Message(id={self.id}, correlation_id={self.correlation_id}, "
            f"kind={self.kind.value}, created_at={self.created_at.isoformat()})"
        )
