# onionrelay/client.py
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from aiohttp import web

from onionrelay.circuit import build_onion, resolve_circuit, select_circuit, usable_nodes
from onionrelay.config import NetworkConfig
from onionrelay.errors import (
    DirectoryUnavailableError,
    ForwardingTransportError,
    InsufficientNodesError,
    InvalidCircuitError,
    MalformedAddressError,
)
from onionrelay.network import DirectoryClient
from onionrelay.server import HttpServer
from onionrelay.transport import HttpTransport

logger = logging.getLogger(__name__)


def is_json_int(value) -> bool:
    # JSON true/false arrive as bool, which is an int subclass.
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class UserState:
    last_received_message: Optional[str] = None
    last_sent_message: Optional[str] = None
    last_circuit: Optional[List[int]] = None


class User(HttpServer):
    """
    Represents a user in the network.
    Sends messages through a fresh 3-relay circuit and receives plaintext
    from exit relays.
    """

    def __init__(self, user_id, config=None, transport=None, directory=None, rng=None):
        self.config = config or NetworkConfig()
        super().__init__(self.config.host, self.config.user_address(user_id))
        self.user_id = user_id
        self.name = f"User {user_id}"
        self.transport = transport or HttpTransport(self.config)
        self.directory = directory or DirectoryClient(self.config)
        self.rng = rng or self.config.circuit_rng()
        self.state = UserState()

    async def send_message(self, message: str, destination_user_id: int, path: Optional[Sequence[int]] = None) -> List[int]:
        """
        Onion-encrypt the message for a random circuit (or `path`, a list of
        node ids) and hand it to the entry node.

        Returns the circuit once the entry send has been dispatched; delivery
        is never confirmed. Raises DirectoryUnavailableError,
        InsufficientNodesError or InvalidCircuitError before anything is sent.
        """
        destination = self.config.user_address(destination_user_id)
        registered = await self.directory.get_node_registry()
        nodes = await asyncio.to_thread(usable_nodes, registered, self.config)
        if path is None:
            circuit = select_circuit(nodes, rng=self.rng)
        else:
            circuit = resolve_circuit(nodes, path)

        chosen_ids = [node.node_id for node in circuit]
        onion = await asyncio.to_thread(build_onion, message, destination, circuit, self.config)
        self.state.last_circuit = chosen_ids
        logger.info("[User %d] Built circuit through Nodes: %s", self.user_id, chosen_ids)
        entry_port = self.config.router_address(circuit[0].node_id)
        logger.debug("[User %d] Sending %d-char onion to Node %d", self.user_id, len(onion), circuit[0].node_id)
        self.spawn(self._dispatch(entry_port, onion))

        self.state.last_sent_message = message
        return chosen_ids

    async def _dispatch(self, port: int, onion: str) -> bool:
        try:
            await self.transport.send_to_router(port, onion)
        except ForwardingTransportError as e:
            logger.error("[User %d] Error sending message: %s", self.user_id, e)
            return False
        logger.info("[User %d] Message sent to entry node at port %d", self.user_id, port)
        return True

    def receive_message(self, message: str) -> None:
        self.state.last_received_message = message
        logger.info("[User %d] Received message: %s", self.user_id, message)

    # -----------------------------
    # HTTP routes
    # -----------------------------
    async def handle_message(self, request: web.Request) -> web.Response:
        try:
            message = (await request.json())["message"]
        except (ValueError, KeyError, TypeError):
            return web.Response(status=400, text="Expected JSON body with a 'message' field")
        if not isinstance(message, str):
            return web.Response(status=400, text="'message' must be a string")
        self.receive_message(message)
        return web.Response(text="success")

    async def handle_send_message(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
            message = body["message"]
            destination_user_id = body["destinationUserId"]
            path = body.get("path")
        except (ValueError, KeyError, TypeError):
            return web.Response(status=400, text="Expected JSON body with 'message' and 'destinationUserId'")
        if not isinstance(message, str):
            return web.Response(status=400, text="'message' must be a string")
        if not is_json_int(destination_user_id):
            return web.Response(status=400, text="'destinationUserId' must be an integer")
        if path is not None and not (isinstance(path, list) and all(is_json_int(i) for i in path)):
            return web.Response(status=400, text="'path' must be a list of node ids")

        try:
            circuit = await self.send_message(message, destination_user_id, path=path)
        except DirectoryUnavailableError as e:
            logger.error("[User %d] Send failed: %s", self.user_id, e)
            return web.json_response({"error": str(e)}, status=503)
        except (InsufficientNodesError, InvalidCircuitError) as e:
            logger.error("[User %d] Send failed: %s", self.user_id, e)
            return web.json_response({"error": str(e)}, status=409)
        except (ValueError, MalformedAddressError) as e:
            return web.json_response({"error": str(e)}, status=400)
        return web.json_response({"result": "Message sent", "circuit": circuit})

    async def handle_last_received(self, request: web.Request) -> web.Response:
        return web.json_response({"result": self.state.last_received_message})

    async def handle_last_sent(self, request: web.Request) -> web.Response:
        return web.json_response({"result": self.state.last_sent_message})

    async def handle_last_circuit(self, request: web.Request) -> web.Response:
        return web.json_response({"result": self.state.last_circuit})

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/message", self.handle_message)
        app.router.add_post("/sendMessage", self.handle_send_message)
        app.router.add_get("/status", self.handle_status)
        app.router.add_get("/getLastReceivedMessage", self.handle_last_received)
        app.router.add_get("/getLastSentMessage", self.handle_last_sent)
        app.router.add_get("/getLastCircuit", self.handle_last_circuit)
        return app

    async def stop(self) -> None:
        await super().stop()
        await self.transport.close()
        await self.directory.close()
