"""
Content Enricher: adds metadata and statistics headers
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from messaging.pipeline import MessageTransformer
from models.message import Message
from models.transform import EnricherOptions

logger = logging.getLogger(__name__)


class ContentEnricher(MessageTransformer):
    name = "content-enricher"

    def __init__(self, options: Optional[EnricherOptions] = None):
        self.options = options or EnricherOptions()

    def transform(self, message: Message) -> Message:
        enriched = message.continue_with(message.payload)

        if self.options.add_metadata:
            self._add_metadata(enriched)
        if self.options.add_statistics:
            self._add_statistics(enriched)

        for key, value in self.options.custom_headers.items():
            enriched.add_header(key, value)

        logger.debug(f"Enriched message {enriched.id} ({len(enriched.headers)} headers)")
        return enriched

    @staticmethod
    def _add_metadata(message: Message):
        message.add_header("enrichedAt", datetime.now(timezone.utc).isoformat())
        message.add_header("originalTimestamp", message.created_at.isoformat())

        payload = message.payload
        if payload is None:
            return
        if isinstance(payload, str):
            message.add_header("payloadSize", len(payload))
            message.add_header("payloadType", "json-string")
        elif isinstance(payload, list):
            message.add_header("recordCount", len(payload))
            message.add_header("payloadType", "list")
        else:
            message.add_header("payloadType", type(payload).__name__)

    @staticmethod
    def _add_statistics(message: Message):
        payload = message.payload
        if not isinstance(payload, list):
            return

        message.add_header("statistics.recordCount", len(payload))
        message.add_header("statistics.hasData", "true" if payload else "false")

        if payload and isinstance(payload[0], dict):
            first = payload[0]
            message.add_header("statistics.columnCount", len(first))
            message.add_header("statistics.columns", ",".join(str(k) for k in first))
