# onionrelay/network.py
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import aiohttp
from aiohttp import web

from onionrelay.config import NetworkConfig
from onionrelay.errors import DirectoryUnavailableError
from onionrelay.server import HttpServer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeIdentity:
    node_id: int
    pub_key: str  # base64 SubjectPublicKeyInfo

    def to_dict(self):
        return {"nodeId": self.node_id, "pubKey": self.pub_key}

    @classmethod
    def from_dict(cls, data):
        return cls(node_id=int(data["nodeId"]), pub_key=str(data["pubKey"]))


class KeyDirectory:
    """
    Node id -> public key store. Registrations are kept in arrival order and
    never deduplicated; readers decide what a repeated id means.
    """

    def __init__(self):
        self._nodes: List[NodeIdentity] = []

    def register(self, node_id: int, pub_key: str) -> NodeIdentity:
        identity = NodeIdentity(node_id, pub_key)
        self._nodes.append(identity)
        return identity

    def list(self) -> List[NodeIdentity]:
        return list(self._nodes)

    def __len__(self):
        return len(self._nodes)


# -----------------------------
# Registry server
# -----------------------------
class Registry(HttpServer):
    name = "Registry"

    def __init__(self, config: Optional[NetworkConfig] = None, directory: Optional[KeyDirectory] = None):
        self.config = config or NetworkConfig()
        super().__init__(self.config.host, self.config.registry_port)
        self.directory = directory or KeyDirectory()

    async def handle_register_node(self, request: web.Request) -> web.Response:
        try:
            identity = NodeIdentity.from_dict(await request.json())
        except (ValueError, KeyError, TypeError) as e:
            return web.Response(status=400, text=f"Invalid registration: {e}")
        self.directory.register(identity.node_id, identity.pub_key)
        logger.info("[Registry] Registered Node %d", identity.node_id)
        return web.Response(status=201, text="Node registered successfully")

    async def handle_get_node_registry(self, request: web.Request) -> web.Response:
        return web.json_response({"nodes": [n.to_dict() for n in self.directory.list()]})

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/registerNode", self.handle_register_node)
        app.router.add_get("/getNodeRegistry", self.handle_get_node_registry)
        app.router.add_get("/status", self.handle_status)
        return app


# -----------------------------
# Directory client
# -----------------------------
class DirectoryClient:
    """Talks to the registry over HTTP. Owns its ClientSession."""

    def __init__(self, config: Optional[NetworkConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.config = config or NetworkConfig()
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def register_node(self, node_id: int, pub_key: str) -> None:
        url = self.config.registry_url("/registerNode")
        try:
            async with self._get_session().post(url, json=NodeIdentity(node_id, pub_key).to_dict()) as response:
                text = await response.text()
                if response.status != 201:
                    raise DirectoryUnavailableError(f"Registry refused Node {node_id} ({response.status}): {text}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DirectoryUnavailableError(f"Registry unreachable at {url}: {e}") from e

    async def get_node_registry(self) -> List[NodeIdentity]:
        url = self.config.registry_url("/getNodeRegistry")
        try:
            async with self._get_session().get(url) as response:
                if response.status != 200:
                    raise DirectoryUnavailableError(f"Registry answered {response.status}")
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DirectoryUnavailableError(f"Registry unreachable at {url}: {e}") from e
        try:
            return [NodeIdentity.from_dict(n) for n in data["nodes"]]
        except (KeyError, TypeError, ValueError) as e:
            raise DirectoryUnavailableError(f"Registry sent a malformed node list: {e}") from e

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None
