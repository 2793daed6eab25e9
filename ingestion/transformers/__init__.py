from ingestion.transformers.enricher import ContentEnricher
from ingestion.transformers.normalizer import DataNormalizer
from ingestion.transformers.translator import DatabaseToJsonTranslator
from ingestion.transformers.validator import JsonStructureInfo, JsonStructureValidator

__all__ = [
    "ContentEnricher",
    "DataNormalizer",
    "DatabaseToJsonTranslator",
    "JsonStructureInfo",
    "JsonStructureValidator",
]
