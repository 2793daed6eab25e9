"""
Pipes and filters: an ordered chain of transformers with tap points
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

from core.exceptions import PipelineError
from messaging.wire_tap import WireTap
from models.message import Message

logger = logging.getLogger(__name__)


class MessageTransformer(ABC):
    """
    A pure message-to-message mapping.

    Implementations hold only their static configuration, never state carried
    between messages, and must build their output with ``Message.continue_with``
    so the message identity is preserved.
    """

    name: str = "transformer"

    @abstractmethod
    def transform(self, message: Message) -> Message:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class Pipeline:
    def __init__(self, wire_tap: Optional[WireTap] = None, filters: Optional[List[MessageTransformer]] = None):
        self.wire_tap = wire_tap
        self._filters: List[MessageTransformer] = list(filters or [])
        self._lock = threading.Lock()

    @property
    def filters(self) -> List[MessageTransformer]:
        with self._lock:
            return list(self._filters)

    def add_filter(self, transformer: MessageTransformer) -> "Pipeline":
        with self._lock:
            self._filters.append(transformer)
        return self

    def remove_filter(self, transformer: MessageTransformer) -> bool:
        with self._lock:
            try:
                self._filters.remove(transformer)
                return True
            except ValueError:
                return False

    def clear_filters(self):
        with self._lock:
            self._filters.clear()

    def _tap(self, message: Message, context: str):
        if self.wire_tap is not None:
            self.wire_tap.intercept(message, context)

    def process(self, message: Message) -> Message:
        """
        Run a message through every filter in order.

        Raises:
            PipelineError: A filter failed; nothing partial is returned
        """
        filters = self.filters
        self._tap(message, "pipeline-input")

        current = message
        for transformer in filters:
            self._tap(current, f"pipeline-filter-{transformer.name}")
            try:
                current = transformer.transform(current)
            except Exception as e:
                logger.error(f"Filter '{transformer.name}' failed on message {message.id}: {e}")
                raise PipelineError(
                    f"Transformer '{transformer.name}' failed: {e}",
                    filter_name=transformer.name,
                    context={"message_id": message.id},
                    original_exception=e
                )
            logger.debug(f"Filter '{transformer.name}' processed message {current.id}")

        self._tap(current, "pipeline-output")
        return current
