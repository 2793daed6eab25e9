"""
Abstract message endpoint: how the engine talks to one external system
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from pydantic import BaseModel

from core.exceptions import UnsupportedOperationError
from models.message import Message


class DeliveryOutcome(BaseModel):
    """Result of one successful sink call"""
    success: bool
    status_code: int
    response_body: Optional[str] = None
    elapsed_ms: float = 0.0


class MessageEndpoint(ABC):
    """
    Base class for sources and sinks.

    Responsibilities:
    - Connection lifecycle (connect / disconnect / is_available)
    - One transfer operation per capability

    Capabilities an endpoint does not have fail fast with
    ``UnsupportedOperationError`` instead of silently doing nothing.
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def connect(self):
        """Establish the connection. Returns immediately if already available."""
        pass

    @abstractmethod
    async def disconnect(self):
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Cheap liveness probe, no I/O."""
        pass

    def _unsupported(self, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"{type(self).__name__} '{self.name}' does not support {operation}",
            context={"endpoint": self.name, "operation": operation}
        )

    async def extract(self, query: str, params: Optional[Mapping[str, Any]] = None) -> Message:
        raise self._unsupported("extract")

    async def send(self, message: Message) -> bool:
        raise self._unsupported("send")

    async def deliver(self, message: Message) -> DeliveryOutcome:
        raise self._unsupported("deliver")

    async def reconnect(self):
        raise self._unsupported("reconnect")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, available={self.is_available()})"
