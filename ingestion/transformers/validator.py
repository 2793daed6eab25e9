"""
Basic structural checks on JSON text payloads
"""

import json
import logging
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from core.exceptions import DataFormatError
from models.message import Message

logger = logging.getLogger(__name__)


class JsonStructureInfo(BaseModel):
    valid: bool = False
    type: Optional[str] = None
    element_count: Optional[int] = None
    fields: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None


def _parse(text: Optional[str]) -> Any:
    if text is None or not str(text).strip():
        raise ValueError("empty document")
    return json.loads(text)


class JsonStructureValidator:
    """
    Structural validation only: no schema language, just shape checks.
    """

    def is_valid_json(self, text: Optional[str]) -> bool:
        try:
            _parse(text)
            return True
        except (ValueError, TypeError) as e:
            logger.debug(f"Invalid JSON: {e}")
            return False

    def is_array(self, text: Optional[str]) -> bool:
        try:
            return isinstance(_parse(text), list)
        except (ValueError, TypeError):
            return False

    def is_object(self, text: Optional[str]) -> bool:
        try:
            return isinstance(_parse(text), dict)
        except (ValueError, TypeError):
            return False

    def missing_fields(self, text: Optional[str], required: List[str]) -> List[str]:
        """Required fields absent (or null) in a JSON object. Non-objects miss everything."""
        if not required:
            return []
        try:
            node = _parse(text)
        except (ValueError, TypeError):
            return list(required)
        if not isinstance(node, dict):
            return list(required)
        return [field for field in required if node.get(field) is None]

    def validate_array_size(self, text: Optional[str], min_elements: int = 0, max_elements: Optional[int] = None) -> bool:
        try:
            node = _parse(text)
        except (ValueError, TypeError):
            return False
        if not isinstance(node, list) or len(node) < min_elements:
            return False
        return max_elements is None or len(node) <= max_elements

    def analyze_structure(self, text: Optional[str]) -> JsonStructureInfo:
        try:
            node = _parse(text)
        except (ValueError, TypeError) as e:
            return JsonStructureInfo(valid=False, error_message=str(e))

        info = JsonStructureInfo(valid=True)
        if isinstance(node, list):
            info.type = "array"
            info.element_count = len(node)
            if node and isinstance(node[0], dict):
                info.fields = list(node[0])
        elif isinstance(node, dict):
            info.type = "object"
            info.fields = list(node)
        else:
            info.type = "value"
        return info

    def ensure_deliverable(self, message: Message) -> JsonStructureInfo:
        """
        Reject a payload that is not a JSON array or object.

        Raises:
            DataFormatError: The payload is not JSON text of an array or object
        """
        if not isinstance(message.payload, str):
            raise DataFormatError(
                "Payload is not JSON text",
                context={"message_id": message.id, "payload_type": type(message.payload).__name__}
            )

        info = self.analyze_structure(message.payload)
        if not info.valid or info.type not in ("array", "object"):
            raise DataFormatError(
                "Payload is not a JSON array or object",
                context={"message_id": message.id, "detail": info.error_message or info.type}
            )
        return info
