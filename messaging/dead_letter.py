"""
Dead Letter Channel: holding area for messages that could not be delivered.

Entries are append-only. With persistence enabled every failure is also
written to its own JSON file; files are created exclusively and never
overwritten, so repeated failures of one message produce separate records.
No replay happens here.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from core.locks import ReadWriteLock
from core.persistence import RecordWriter, write_json_exclusive
from models.message import Message, to_jsonable

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FailedMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: Message
    reason: str
    failed_at: datetime = Field(default_factory=_utcnow)

    def to_record(self) -> Dict[str, Any]:
        return {
            "messageId": self.message.id,
            "correlationId": self.message.correlation_id,
            "reason": self.reason,
            "timestamp": self.failed_at.isoformat(),
            "messageType": self.message.kind.value,
            "payload": to_jsonable(self.message.payload),
            "headers": dict(self.message.headers),
        }


class DeadLetterChannel:
    def __init__(self, directory: Optional[Union[str, Path]] = None, persist: bool = True):
        self.directory = Path(directory) if directory is not None else None
        self.persist = persist and self.directory is not None
        self._entries: List[FailedMessage] = []
        self._lock = ReadWriteLock()
        self._writer = RecordWriter("dead letter")

        if self.persist:
            self.directory.mkdir(parents=True, exist_ok=True)

    def send(self, message: Message, reason: str) -> FailedMessage:
        """Record an undeliverable message with the reason it failed."""
        entry = FailedMessage(message=message, reason=reason or "unknown failure")

        with self._lock.write():
            self._entries.append(entry)

        if self.persist:
            self._writer.submit(self._write, entry)

        logger.warning(f"Message {message.id} sent to dead letter channel: {entry.reason}")
        return entry

    def _write(self, entry: FailedMessage):
        stamp = entry.failed_at.strftime("%Y%m%dT%H%M%S%f")
        base = f"failed_{entry.message.id}_{stamp}"
        record = entry.to_record()

        suffix = 0
        while True:
            name = f"{base}.json" if suffix == 0 else f"{base}_{suffix}.json"
            try:
                if write_json_exclusive(self.directory / name, record):
                    return
            except OSError as e:
                # The in-memory entry is authoritative; a failed write is reported only
                logger.error(f"Failed to persist dead letter for message {entry.message.id}: {e}")
                return
            suffix += 1

    def failed_messages(self) -> List[FailedMessage]:
        with self._lock.read():
            return list(self._entries)

    def count(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def clear(self) -> int:
        """Forget every in-memory entry. Durable records are left in place."""
        with self._lock.write():
            cleared = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {cleared} dead letter entries")
        return cleared

    async def flush(self):
        """Wait for pending durable records."""
        await self._writer.flush()
