"""
HTTP sink endpoint with pluggable authentication.

One ``deliver`` call is exactly one HTTP request; retrying is the caller's
job (see ``messaging.retry``). Failures are classified so the retry handler
can tell them apart:

- 2xx → ``DeliveryOutcome``
- 5xx, connection errors → ``TransientDeliveryError``
- timeouts → ``DeliveryTimeoutError``
- 4xx and anything else → ``PermanentDeliveryError``
"""

import base64
import logging
import time
from typing import Callable, Dict

import httpx

from core.exceptions import (
    ConfigurationError,
    DataFormatError,
    DeliveryError,
    DeliveryTimeoutError,
    PermanentDeliveryError,
    TransientDeliveryError,
)
from core.http import HttpClientPool
from ingestion.endpoints.base import DeliveryOutcome, MessageEndpoint
from models.base import AuthKind
from models.job import TargetConfig
from models.message import Message

logger = logging.getLogger(__name__)


def _no_auth(target: TargetConfig) -> Dict[str, str]:
    return {}


def _bearer_auth(target: TargetConfig) -> Dict[str, str]:
    return {"Authorization": f"Bearer {target.auth_token}"}


def _api_key_auth(target: TargetConfig) -> Dict[str, str]:
    return {target.api_key_header: target.api_key}


def _basic_auth(target: TargetConfig) -> Dict[str, str]:
    credentials = f"{target.username}:{target.password}".encode("utf-8")
    return {"Authorization": f"Basic {base64.b64encode(credentials).decode('ascii')}"}


AUTH_HEADERS: Dict[AuthKind, Callable[[TargetConfig], Dict[str, str]]] = {
    AuthKind.NONE: _no_auth,
    AuthKind.BEARER: _bearer_auth,
    AuthKind.API_KEY: _api_key_auth,
    AuthKind.BASIC: _basic_auth,
}


class RestApiEndpoint(MessageEndpoint):
    def __init__(self, config: TargetConfig, clients: HttpClientPool):
        if not config.is_valid():
            raise ConfigurationError(
                f"Invalid API descriptor '{config.name}'",
                context={"target_name": config.name, "invalid_fields": config.validation_errors()}
            )
        super().__init__(config.name or config.base_url)
        self.config = config
        self.clients = clients
        self.url = config.build_full_url()
        self._connected = False

    def build_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        headers.update(self.config.headers)
        headers.update(AUTH_HEADERS[self.config.auth_type](self.config))
        return headers

    async def connect(self):
        if self._connected:
            return
        await self.clients.get_client(self.config)
        self._connected = True
        logger.debug(f"Sink '{self.name}' ready ({self.config.method.value} {self.url})")

    async def disconnect(self):
        self._connected = False

    def is_available(self) -> bool:
        return self._connected

    def _context(self, **extra) -> Dict[str, object]:
        context = {"target_name": self.name, "url": self.url, "method": self.config.method.value}
        context.update(extra)
        return context

    async def deliver(self, message: Message) -> DeliveryOutcome:
        """
        Send the message's JSON text payload in one HTTP call.

        Raises:
            DataFormatError: Payload is not JSON text
            PermanentDeliveryError: HTTP 4xx (not retried)
            TransientDeliveryError: HTTP 5xx or transport failure
            DeliveryTimeoutError: The request timed out
        """
        if not isinstance(message.payload, str):
            raise DataFormatError(
                "Sink payload must be JSON text",
                context=self._context(message_id=message.id, payload_type=type(message.payload).__name__)
            )

        await self.connect()
        client = await self.clients.get_client(self.config)
        started = time.perf_counter()

        try:
            response = await client.request(
                self.config.method.value,
                self.url,
                content=message.payload.encode("utf-8"),
                headers=self.build_headers(),
                timeout=self.config.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise DeliveryTimeoutError(
                f"Timeout after {self.config.timeout_seconds}s calling {self.url}",
                context=self._context(message_id=message.id),
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise TransientDeliveryError(
                f"Network error calling {self.url}: {e}",
                context=self._context(message_id=message.id),
                original_exception=e
            )

        elapsed_ms = (time.perf_counter() - started) * 1000
        status = response.status_code
        body = response.text

        if 200 <= status < 300:
            logger.info(f"Delivered message {message.id} to '{self.name}' (HTTP {status}, {elapsed_ms:.0f}ms)")
            return DeliveryOutcome(success=True, status_code=status, response_body=body, elapsed_ms=elapsed_ms)

        error_cls = TransientDeliveryError if status >= 500 else PermanentDeliveryError
        raise error_cls(
            f"HTTP {status}: {body}",
            context=self._context(message_id=message.id, elapsed_ms=round(elapsed_ms, 2)),
            status_code=status,
            response_body=body
        )

    async def send(self, message: Message) -> bool:
        try:
            await self.deliver(message)
            return True
        except DeliveryError as e:
            logger.warning(f"Send to '{self.name}' failed: {e.reason}")
            return False

    async def test_connection(self) -> bool:
        """GET the base URL; any HTTP response means the target is reachable."""
        client = await self.clients.get_client(self.config)
        try:
            response = await client.get(
                self.config.base_url,
                headers=AUTH_HEADERS[self.config.auth_type](self.config),
                timeout=self.config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Target '{self.name}' unreachable: {e}")
            return False

        logger.info(f"Target '{self.name}' reachable (HTTP {response.status_code})")
        return True
