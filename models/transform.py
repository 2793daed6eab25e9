"""
Typed transformer configuration.

Jobs store their transformer switches as a loose mapping so stored
definitions stay forward compatible; ``TransformOptions.from_mapping`` is the
single place that mapping is interpreted.
"""

import re
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from models.base import NullHandling


class NormalizerOptions(BaseModel):
    normalize_dates: bool = True
    normalize_decimals: bool = True
    normalize_column_names: bool = True
    encode_binary: bool = True
    null_handling: NullHandling = NullHandling.KEEP
    null_replacement: str = ""


class EnricherOptions(BaseModel):
    add_metadata: bool = True
    add_statistics: bool = True
    custom_headers: Dict[str, str] = Field(default_factory=dict)


class TranslatorOptions(BaseModel):
    pretty_print: bool = False


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

_NORMALIZER_KEYS = {
    "normalize_dates", "normalize_decimals", "normalize_column_names", "encode_binary",
}
_ENRICHER_KEYS = {"add_metadata", "add_statistics"}


def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
    return default


def _as_null_handling(value: Any) -> Optional[NullHandling]:
    try:
        return NullHandling(str(value).strip().lower())
    except ValueError:
        return None


class TransformOptions(BaseModel):
    normalizer: NormalizerOptions = Field(default_factory=NormalizerOptions)
    enricher: EnricherOptions = Field(default_factory=EnricherOptions)
    translator: TranslatorOptions = Field(default_factory=TranslatorOptions)

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "TransformOptions":
        """
        Build typed options from a stored job mapping.

        Accepts camelCase (``normalizeDates``) and snake_case keys. Boolean
        switches may be real booleans or "true"/"false" strings; values that
        cannot be interpreted fall back to the defaults. Unknown keys are ignored.
        """
        options = cls()
        if not mapping:
            return options

        for raw_key, value in mapping.items():
            key = _snake(str(raw_key))

            if key in _NORMALIZER_KEYS:
                current = getattr(options.normalizer, key)
                setattr(options.normalizer, key, _as_bool(value, current))
            elif key == "null_handling":
                strategy = _as_null_handling(value)
                if strategy is not None:
                    options.normalizer.null_handling = strategy
            elif key == "null_replacement" and value is not None:
                options.normalizer.null_replacement = str(value)
            elif key in _ENRICHER_KEYS:
                current = getattr(options.enricher, key)
                setattr(options.enricher, key, _as_bool(value, current))
            elif key == "custom_headers" and isinstance(value, Mapping):
                options.enricher.custom_headers = {str(k): str(v) for k, v in value.items()}
            elif key == "pretty_print":
                options.translator.pretty_print = _as_bool(value, options.translator.pretty_print)

        return options
