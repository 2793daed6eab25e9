"""
Message Translator: row payloads to JSON text
"""

import json
import logging
from typing import Optional

from pydantic_core import PydanticSerializationError

from core.exceptions import DataFormatError
from messaging.pipeline import MessageTransformer
from models.message import Message, to_jsonable
from models.transform import TranslatorOptions

logger = logging.getLogger(__name__)


class DatabaseToJsonTranslator(MessageTransformer):
    """
    Serialize the payload to JSON text, compact or pretty.

    Dates become ISO strings, decimals strings and bytes base64. A ``None``
    payload becomes an empty array. The record count of a list payload is
    kept in the ``recordCount`` header since the payload itself is now text.
    """

    name = "json-translator"

    def __init__(self, options: Optional[TranslatorOptions] = None):
        self.options = options or TranslatorOptions()

    def transform(self, message: Message) -> Message:
        payload = message.payload if message.payload is not None else []

        try:
            if self.options.pretty_print:
                text = json.dumps(to_jsonable(payload), indent=2, ensure_ascii=False)
            else:
                text = json.dumps(to_jsonable(payload), separators=(",", ":"), ensure_ascii=False)
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise DataFormatError(
                "Payload cannot be serialized to JSON",
                context={"message_id": message.id, "payload_type": type(payload).__name__},
                original_exception=e
            )

        translated = message.continue_with(text)
        if isinstance(payload, list):
            translated.add_header("recordCount", len(payload))
        translated.add_header("contentType", "application/json")
        translated.add_header("format", "pretty" if self.options.pretty_print else "compact")

        logger.debug(f"Translated message {message.id} to {len(text)} chars of JSON")
        return translated
