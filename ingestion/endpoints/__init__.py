from ingestion.endpoints.base import DeliveryOutcome, MessageEndpoint
from ingestion.endpoints.database import DatabaseEndpoint
from ingestion.endpoints.rest_api import AUTH_HEADERS, RestApiEndpoint

__all__ = [
    "AUTH_HEADERS",
    "DatabaseEndpoint",
    "DeliveryOutcome",
    "MessageEndpoint",
    "RestApiEndpoint",
]
