"""
Normalize extracted rows into JSON-friendly records
"""

import base64
import logging
import re
import zlib
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Optional

from core.exceptions import NormalizationError
from messaging.pipeline import MessageTransformer
from models.base import NullHandling
from models.message import Message
from models.transform import NormalizerOptions

logger = logging.getLogger(__name__)

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_]")
_UNDERSCORE_RUNS = re.compile(r"_+")


class DataNormalizer(MessageTransformer):
    """
    Standardize column names and value formats of row payloads.

    Handles:
    - Column names (snake-ish, lower-case, ASCII only)
    - Dates and times (ISO-8601)
    - Decimals (plain strings, no exponent, no trailing zeros)
    - Binary values (base64 text)
    - Nulls (keep, exclude or replace)

    Payloads that are neither a record nor a list of records pass through.
    """

    name = "normalizer"

    def __init__(self, options: Optional[NormalizerOptions] = None):
        self.options = options or NormalizerOptions()

    def transform(self, message: Message) -> Message:
        payload = message.payload

        if isinstance(payload, list):
            normalized = [self.normalize_record(row) if isinstance(row, dict) else row for row in payload]
        elif isinstance(payload, dict):
            normalized = self.normalize_record(payload)
        else:
            logger.debug(f"Normalizer passing through {type(payload).__name__} payload")
            return message.continue_with(payload)

        result = message.continue_with(normalized)
        result.add_header("normalized", "true")
        return result

    def normalize_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        normalized: Dict[str, Any] = {}

        for column, value in record.items():
            key = self.normalize_column_name(column) if self.options.normalize_column_names else column

            if value is None:
                if self.options.null_handling == NullHandling.EXCLUDE:
                    continue
                if self.options.null_handling == NullHandling.REPLACE:
                    normalized[key] = self.options.null_replacement
                    continue
                normalized[key] = None
                continue

            try:
                normalized[key] = self.normalize_value(value)
            except (ValueError, TypeError, ArithmeticError) as e:
                raise NormalizationError(
                    f"Cannot normalize column '{column}'",
                    context={"column": str(column), "value_type": type(value).__name__},
                    original_exception=e
                )

        return normalized

    def normalize_value(self, value: Any) -> Any:
        opts = self.options

        # datetime is a date subclass: test it first
        if isinstance(value, datetime):
            return value.isoformat() if opts.normalize_dates else value
        if isinstance(value, date):
            return value.strftime("%Y-%m-%d") if opts.normalize_dates else value
        if isinstance(value, time):
            return value.isoformat() if opts.normalize_dates else value
        if isinstance(value, Decimal):
            return self._format_decimal(value) if opts.normalize_decimals else value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return base64.b64encode(bytes(value)).decode("ascii") if opts.encode_binary else value
        return value

    @staticmethod
    def normalize_column_name(column: Any) -> str:
        """
        Trim, replace anything outside ``[A-Za-z0-9_]`` with ``_``, collapse
        runs, strip edge underscores and lower-case. A name with nothing left
        becomes ``column_<crc32 of the original>``.
        """
        original = str(column)
        name = _INVALID_CHARS.sub("_", original.strip())
        name = _UNDERSCORE_RUNS.sub("_", name).strip("_").lower()
        if not name:
            return f"column_{zlib.crc32(original.encode('utf-8'))}"
        return name

    @staticmethod
    def _format_decimal(value: Decimal) -> str:
        if not value.is_finite():
            return str(value)
        if value == 0:
            return "0"
        return format(value.normalize(), "f")

