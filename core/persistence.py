"""
Durable JSON records written off the event loop.

Called from inside a running loop, a write is handed to a worker thread with
``asyncio.to_thread`` and tracked until :meth:`RecordWriter.flush` awaits it.
Called from a plain thread, the write happens inline.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Set

logger = logging.getLogger(__name__)


def write_json_exclusive(path: Path, record: Dict[str, Any]) -> bool:
    """Create ``path`` holding ``record``. False if the file already exists."""
    text = json.dumps(record, indent=2)
    try:
        with open(path, "x", encoding="utf-8") as fh:
            fh.write(text)
    except FileExistsError:
        return False
    return True


class RecordWriter:
    def __init__(self, name: str):
        self.name = name
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, write: Callable[..., Any], *args: Any):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            write(*args)
            return

        task = loop.create_task(asyncio.to_thread(write, *args))
        self._pending.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{self.name} record write failed: {error!r}")

    async def flush(self):
        """Wait for every write submitted so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
