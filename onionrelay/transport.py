# onionrelay/transport.py
import asyncio
import logging
from typing import Optional

import aiohttp

from onionrelay.config import NetworkConfig
from onionrelay.errors import ForwardingTransportError

logger = logging.getLogger(__name__)


class HttpTransport:
    """
    POSTs {"message": ...} to a participant's /message route.

    Success means the receiver acknowledged receipt, nothing more: relays
    answer before they have decrypted anything.
    """

    def __init__(self, config: Optional[NetworkConfig] = None):
        self.config = config or NetworkConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.forward_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def _post(self, port: int, message: str) -> str:
        url = self.config.url(port, "/message")
        try:
            async with self._get_session().post(url, json={"message": message}) as response:
                text = await response.text()
                if response.status >= 400:
                    raise ForwardingTransportError(port, f"HTTP {response.status}: {text}")
                return text
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ForwardingTransportError(port, e) from e

    async def send_to_router(self, port: int, message: str) -> str:
        return await self._post(port, message)

    async def send_to_user(self, port: int, message: str) -> str:
        return await self._post(port, message)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
