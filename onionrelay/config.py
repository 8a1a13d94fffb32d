# onionrelay/config.py
import logging
import math
import random
from dataclasses import dataclass
from typing import Optional

# -----------------------------
# Protocol constants
# -----------------------------
# Shared by the sender and every relay. Changing any of these changes the
# wire format.
RSA_KEY_BITS = 2048
AES_KEY_BYTES = 32
AES_IV_BYTES = 16

# Base64 length of one RSA-OAEP block (256 bytes -> 344 characters).
HEADER_LENGTH = 4 * math.ceil((RSA_KEY_BITS // 8) / 3)

# Zero-padded decimal destination field at the front of every decrypted layer.
ADDRESS_WIDTH = 10

CIRCUIT_LENGTH = 3

# -----------------------------
# Default network layout
# -----------------------------
HOST = "localhost"
REGISTRY_PORT = 8080
BASE_ONION_ROUTER_PORT = 4000
BASE_USER_PORT = 5000
MAX_NODES = 1000


@dataclass(frozen=True)
class NetworkConfig:
    """
    Where every participant listens.

    A router with id N listens on base_onion_router_port + N, a user with id N
    on base_user_port + N. Anything at or above base_user_port is a final
    recipient, so the whole router range must sit below it.
    """
    host: str = HOST
    registry_port: int = REGISTRY_PORT
    base_onion_router_port: int = BASE_ONION_ROUTER_PORT
    base_user_port: int = BASE_USER_PORT
    max_nodes: int = MAX_NODES
    forward_timeout: Optional[float] = None
    secure_circuit_selection: bool = False

    def __post_init__(self):
        if self.base_onion_router_port + self.max_nodes > self.base_user_port:
            raise ValueError(
                "Router ports must stay below base_user_port "
                f"({self.base_onion_router_port} + {self.max_nodes} > {self.base_user_port})."
            )
        if len(str(self.base_user_port + self.max_nodes)) > ADDRESS_WIDTH:
            raise ValueError(f"Ports must fit in {ADDRESS_WIDTH} decimal digits.")

    def router_address(self, node_id: int) -> int:
        if not (0 <= node_id < self.max_nodes):
            raise ValueError(f"node_id must be in [0, {self.max_nodes}).")
        return self.base_onion_router_port + node_id

    def user_address(self, user_id: int) -> int:
        if user_id < 0:
            raise ValueError("user_id must be non-negative.")
        address = self.base_user_port + user_id
        if len(str(address)) > ADDRESS_WIDTH:
            raise ValueError(f"user_id {user_id} does not fit in a {ADDRESS_WIDTH}-digit address.")
        return address

    def is_user_address(self, address: int) -> bool:
        return address >= self.base_user_port

    def url(self, port: int, path: str) -> str:
        return f"http://{self.host}:{port}{path}"

    def registry_url(self, path: str) -> str:
        return self.url(self.registry_port, path)

    def circuit_rng(self):
        if self.secure_circuit_selection:
            return random.SystemRandom()
        return random.Random()


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
