"""
Wire Tap: non-intrusive observer of messages passing through the engine
"""

import logging
import threading
from typing import Callable, List, Optional

from messaging.message_store import MessageStore
from models.message import Message

logger = logging.getLogger(__name__)

Listener = Callable[[Message, str], None]


class WireTap:
    """
    Stores every intercepted message and fans it out to listeners.

    A listener that raises is logged and skipped; it never breaks the tap or
    the flow being observed.
    """

    def __init__(self, store: MessageStore, enabled: bool = True):
        self.store = store
        self.enabled = enabled
        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()

    def intercept(self, message: Optional[Message], context: str):
        if not self.enabled or message is None:
            return

        self.store.save(message, context)
        logger.debug(f"Tapped {message.id} at {context}")

        with self._listeners_lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(message, context)
            except Exception:
                logger.exception(f"Wire tap listener {listener!r} failed for message {message.id} at {context}")

    def add_listener(self, listener: Listener):
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> bool:
        with self._listeners_lock:
            try:
                self._listeners.remove(listener)
                return True
            except ValueError:
                return False

    def clear_listeners(self):
        with self._listeners_lock:
            self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


def logging_listener(message: Message, context: str):
    """Listener that logs each tapped message at INFO."""
    logger.info(
        f"[{context}] {message} headers={message.headers}"
    )
