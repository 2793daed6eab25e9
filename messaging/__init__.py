"""
Enterprise Integration Pattern building blocks.

Modules:
    pipeline: Pipes and filters with wire-tap points between stages
    wire_tap: Non-intrusive observer fanning out to listeners
    message_store: Bounded history of tapped messages with optional durable records
    retry: Guaranteed delivery via bounded exponential backoff
    dead_letter: Holding area for undeliverable messages
    control_bus: Start/stop/status of running job executions
"""

from messaging.control_bus import ControlBus
from messaging.dead_letter import DeadLetterChannel, FailedMessage
from messaging.message_store import MessageStore, StoredMessage
from messaging.pipeline import MessageTransformer, Pipeline
from messaging.retry import RetryHandler, RetryPolicy
from messaging.wire_tap import WireTap, logging_listener

__all__ = [
    "ControlBus",
    "DeadLetterChannel",
    "FailedMessage",
    "MessageStore",
    "StoredMessage",
    "MessageTransformer",
    "Pipeline",
    "RetryHandler",
    "RetryPolicy",
    "WireTap",
    "logging_listener",
]
