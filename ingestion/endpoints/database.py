"""
Relational source endpoint
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from core.database import ConnectionManager
from core.exceptions import ConfigurationError, DatabaseConnectionError
from ingestion.endpoints.base import MessageEndpoint
from models.job import SourceConfig
from models.message import Message

logger = logging.getLogger(__name__)


class DatabaseEndpoint(MessageEndpoint):
    """
    Reads rows from a relational source through the shared connection pool.

    ``extract`` returns a document message whose payload is the list of row
    mappings. ``reconnect`` drops the pool for this source, waits
    ``reconnect_delay`` seconds and connects again; the sleep honours task
    cancellation.
    """

    def __init__(
        self,
        config: SourceConfig,
        connections: ConnectionManager,
        reconnect_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        if not config.is_valid():
            raise ConfigurationError(
                f"Invalid source descriptor '{config.name}'",
                context={"source_name": config.name, "invalid_fields": config.validation_errors()}
            )
        super().__init__(config.name)
        self.config = config
        self.connections = connections
        self.reconnect_delay = reconnect_delay
        self._sleep = sleep
        self._connected = False

    async def connect(self):
        if self._connected:
            return
        await self.connections.ping(self.config)
        self._connected = True
        logger.info(f"Connected to source '{self.name}' ({self.config.kind.value})")

    async def disconnect(self):
        self._connected = False
        await self.connections.close(self.name)
        logger.info(f"Disconnected from source '{self.name}'")

    def is_available(self) -> bool:
        return self._connected

    async def reconnect(self):
        logger.warning(f"Reconnecting to source '{self.name}' in {self.reconnect_delay}s")
        await self.disconnect()
        await self._sleep(self.reconnect_delay)
        await self.connect()

    async def extract(self, query: str, params: Optional[Mapping[str, Any]] = None) -> Message:
        """
        Run ``query`` and wrap the rows in a message.

        Raises:
            DatabaseConnectionError: Source unreachable (transient)
            QueryExecutionError: Query rejected by the source
        """
        if not self._connected:
            await self.connect()

        try:
            rows = await self.connections.fetch_rows(self.config, query, params)
        except DatabaseConnectionError:
            self._connected = False
            raise

        message = Message(payload=rows)
        message.add_header("source", "database")
        message.add_header("database", self.config.database)
        message.add_header("query", query)
        message.add_header("recordCount", len(rows))

        logger.info(f"Extracted {len(rows)} records from source '{self.name}'")
        return message
