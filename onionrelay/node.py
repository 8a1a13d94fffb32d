# onionrelay/node.py
import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import List, Optional

from aiohttp import web

from onionrelay.codec import decode_layer
from onionrelay.config import NetworkConfig
from onionrelay.crypto import export_prv_key, export_pub_key, generate_rsa_key_pair
from onionrelay.errors import (
    DecryptionError,
    DirectoryUnavailableError,
    ForwardingTransportError,
    MalformedAddressError,
    OnionError,
)
from onionrelay.network import DirectoryClient
from onionrelay.server import HttpServer
from onionrelay.transport import HttpTransport

logger = logging.getLogger(__name__)


class ForwardStatus(enum.Enum):
    DELIVERED = "delivered"
    RELAYED = "relayed"
    FAILED = "failed"


@dataclass
class ForwardResult:
    status: ForwardStatus
    destination: Optional[int] = None
    error: Optional[OnionError] = None


@dataclass
class RelayState:
    """
    Latest-only debug slots. With several messages in flight these reflect
    whichever handler wrote last, not a single message.
    """
    last_received_encrypted_message: Optional[str] = None
    last_received_decrypted_message: Optional[str] = None
    last_message_destination: Optional[int] = None
    last_circuit: Optional[List[int]] = None


class OnionRouter(HttpServer):
    """
    Represents a relay in the network.
    Peels exactly one layer per message and passes the rest on.
    """

    def __init__(self, node_id, config=None, key_pair=None, transport=None, directory=None):
        self.config = config or NetworkConfig()
        super().__init__(self.config.host, self.config.router_address(node_id))
        self.node_id = node_id
        self.name = f"Node {node_id}"
        if key_pair is None:
            key_pair = generate_rsa_key_pair()
        self.public_key, self.private_key = key_pair
        self.transport = transport or HttpTransport(self.config)
        self.directory = directory or DirectoryClient(self.config)
        self.state = RelayState()

    @property
    def pub_key(self) -> str:
        return export_pub_key(self.public_key)

    async def receive_relay(self, message: str) -> ForwardResult:
        """
        Receive an onion-wrapped message:
        - Decrypt one layer with this node's private key.
        - If the destination is a user port, deliver the remainder as plaintext.
        - Otherwise, forward the peeled onion to the next router.
        Never raises; failures end up in the returned ForwardResult.
        """
        self.state.last_received_encrypted_message = message

        try:
            next_hop, payload = await asyncio.to_thread(decode_layer, message, self.private_key)
        except (DecryptionError, MalformedAddressError) as e:
            logger.warning("[Node %d] Dropping message: %s", self.node_id, e)
            return ForwardResult(ForwardStatus.FAILED, error=e)

        self.state.last_message_destination = next_hop
        self.state.last_received_decrypted_message = payload
        if self.state.last_circuit is None:
            self.state.last_circuit = []
        if self.node_id not in self.state.last_circuit:
            self.state.last_circuit.append(self.node_id)

        try:
            if self.config.is_user_address(next_hop):
                logger.info("[Node %d - EXIT] Delivering message to user at port %d", self.node_id, next_hop)
                await self.transport.send_to_user(next_hop, payload)
                status = ForwardStatus.DELIVERED
            else:
                logger.info("[Node %d] Forwarding message to router at port %d", self.node_id, next_hop)
                await self.transport.send_to_router(next_hop, payload)
                status = ForwardStatus.RELAYED
        except ForwardingTransportError as e:
            logger.error("[Node %d] Error forwarding to port %d: %s", self.node_id, next_hop, e)
            return ForwardResult(ForwardStatus.FAILED, destination=next_hop, error=e)

        return ForwardResult(status, destination=next_hop)

    # -----------------------------
    # HTTP routes
    # -----------------------------
    async def handle_message(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
            message = body["message"]
        except (ValueError, KeyError, TypeError):
            return web.Response(status=400, text="Expected JSON body with a 'message' field")
        if not isinstance(message, str):
            return web.Response(status=400, text="'message' must be a string")
        # Acknowledge now; decode failures are never reported upstream.
        self.spawn(self.receive_relay(message))
        return web.Response(text="Message received")

    async def handle_get_private_key(self, request: web.Request) -> web.Response:
        return web.json_response({"result": export_prv_key(self.private_key)})

    async def handle_last_encrypted(self, request: web.Request) -> web.Response:
        return web.json_response({"result": self.state.last_received_encrypted_message})

    async def handle_last_decrypted(self, request: web.Request) -> web.Response:
        return web.json_response({"result": self.state.last_received_decrypted_message})

    async def handle_last_destination(self, request: web.Request) -> web.Response:
        return web.json_response({"result": self.state.last_message_destination})

    async def handle_last_circuit(self, request: web.Request) -> web.Response:
        return web.json_response({"result": self.state.last_circuit})

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/message", self.handle_message)
        app.router.add_get("/status", self.handle_status)
        app.router.add_get("/getPrivateKey", self.handle_get_private_key)
        app.router.add_get("/getLastReceivedEncryptedMessage", self.handle_last_encrypted)
        app.router.add_get("/getLastReceivedDecryptedMessage", self.handle_last_decrypted)
        app.router.add_get("/getLastMessageDestination", self.handle_last_destination)
        app.router.add_get("/getLastCircuit", self.handle_last_circuit)
        return app

    async def register(self) -> bool:
        try:
            await self.directory.register_node(self.node_id, self.pub_key)
        except DirectoryUnavailableError as e:
            logger.error("[Node %d] Failed to register with the registry: %s", self.node_id, e)
            return False
        logger.info("[Node %d] Registered with the registry", self.node_id)
        return True

    async def start(self) -> None:
        await super().start()
        await self.register()

    async def stop(self) -> None:
        await super().stop()
        await self.transport.close()
        await self.directory.close()
