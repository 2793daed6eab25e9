"""
Shared httpx clients for HTTP sinks
"""

import asyncio
import logging
from typing import Dict, List, Optional

import httpx

from core.config import Settings, settings as default_settings
from models.job import TargetConfig

logger = logging.getLogger(__name__)


class HttpClientPool:
    """
    One lazily created ``httpx.AsyncClient`` per target name.

    Clients are reused by every job delivering to the same target and closed
    only by :meth:`close` / :meth:`close_all`. ``transport`` lets callers
    substitute an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.settings = settings or default_settings
        self._transport = transport
        self._clients: Dict[str, httpx.AsyncClient] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def key_for(target: TargetConfig) -> str:
        return target.name or target.base_url or "default"

    @property
    def target_names(self) -> List[str]:
        return list(self._clients)

    async def get_client(self, target: TargetConfig) -> httpx.AsyncClient:
        key = self.key_for(target)
        client = self._clients.get(key)
        if client is not None and not client.is_closed:
            return client

        async with self._lock:
            client = self._clients.get(key)
            if client is None or client.is_closed:
                timeout = target.timeout_seconds or self.settings.HTTP_TIMEOUT_SECONDS
                client = httpx.AsyncClient(
                    timeout=httpx.Timeout(timeout),
                    transport=self._transport,
                )
                self._clients[key] = client
                logger.debug(f"Created HTTP client for target '{key}'")
            return client

    async def close(self, name: str) -> bool:
        async with self._lock:
            client = self._clients.pop(name, None)
        if client is None:
            return False

        try:
            await client.aclose()
        except Exception as e:
            logger.warning(f"Error closing HTTP client for target '{name}': {e}")
        return True

    async def close_all(self):
        for name in list(self._clients):
            await self.close(name)
        logger.info("HTTP clients closed")
