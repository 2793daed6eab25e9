"""
Message Store: bounded, queryable history of tapped messages.

Every intercept is kept as its own entry, in observation order. A message id
recurs across pipeline stages, so lookups by id return the most recent
observation and :meth:`MessageStore.history` returns all of them. When the
store is over capacity the oldest entries are evicted first.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from itertools import count
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from core.locks import ReadWriteLock
from core.persistence import RecordWriter, write_json_exclusive
from models.message import Message, to_jsonable

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: Message
    context: str
    observed_at: datetime = Field(default_factory=_utcnow)

    def to_record(self) -> Dict[str, Any]:
        return {
            "messageId": self.message.id,
            "correlationId": self.message.correlation_id,
            "context": self.context,
            "timestamp": self.observed_at.isoformat(),
            "messageType": self.message.kind.value,
            "payload": to_jsonable(self.message.payload),
            "headers": dict(self.message.headers),
        }


class MessageStore:
    def __init__(
        self,
        max_messages: int = 1000,
        directory: Optional[Union[str, Path]] = None,
        persist: bool = False
    ):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")

        self.max_messages = max_messages
        self.directory = Path(directory) if directory is not None else None
        self.persist = persist and self.directory is not None

        self._entries: Deque[StoredMessage] = deque()
        self._by_id: Dict[str, List[StoredMessage]] = {}
        self._lock = ReadWriteLock()
        self._sequence = count(1)
        self._writer = RecordWriter("message store")

        if self.persist:
            self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, message: Message, context: str) -> StoredMessage:
        snapshot = message.model_copy(update={"headers": dict(message.headers)})

        with self._lock.write():
            # Stamped under the lock so append order matches observed_at order
            entry = StoredMessage(message=snapshot, context=context)
            self._entries.append(entry)
            self._by_id.setdefault(message.id, []).append(entry)
            self._evict()
            seq = next(self._sequence)

        if self.persist:
            self._writer.submit(self._write, entry, seq)
        return entry

    def _evict(self):
        while len(self._entries) > self.max_messages:
            oldest = self._entries.popleft()
            same_id = self._by_id.get(oldest.message.id)
            if same_id:
                same_id.pop(0)
                if not same_id:
                    del self._by_id[oldest.message.id]

    def _write(self, entry: StoredMessage, seq: int):
        stamp = entry.observed_at.strftime("%Y%m%dT%H%M%S%f")
        path = self.directory / f"message-{entry.message.id}-{stamp}-{seq}.json"
        try:
            write_json_exclusive(path, entry.to_record())
        except OSError as e:
            logger.error(f"Failed to persist message {entry.message.id} ({entry.context}): {e}")

    async def flush(self):
        """Wait for pending durable records."""
        await self._writer.flush()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def retrieve(self, message_id: str) -> Optional[StoredMessage]:
        """Latest observation of a message id, or None."""
        with self._lock.read():
            entries = self._by_id.get(message_id)
            return entries[-1] if entries else None

    def history(self, message_id: str) -> List[StoredMessage]:
        with self._lock.read():
            return list(self._by_id.get(message_id, ()))

    def retrieve_by_context(self, context: str) -> List[StoredMessage]:
        with self._lock.read():
            return [e for e in self._entries if e.context == context]

    def retrieve_by_time_range(self, start: datetime, end: datetime) -> List[StoredMessage]:
        """Entries observed within ``[start, end]``, both bounds inclusive."""
        with self._lock.read():
            return [e for e in self._entries if start <= e.observed_at <= end]

    def retrieve_all(self) -> List[StoredMessage]:
        with self._lock.read():
            return list(self._entries)

    def size(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def clear(self):
        with self._lock.write():
            self._entries.clear()
            self._by_id.clear()

    def remove(self, message_id: str) -> bool:
        """Drop every observation of a message id."""
        with self._lock.write():
            removed = self._by_id.pop(message_id, None)
            if not removed:
                return False
            self._entries = deque(e for e in self._entries if e.message.id != message_id)
            return True
