import pytest

from onionrelay.config import NetworkConfig
from onionrelay.crypto import export_pub_key, generate_rsa_key_pair
from onionrelay.errors import DirectoryUnavailableError, ForwardingTransportError
from onionrelay.network import NodeIdentity


class FakeDirectory:
    """Stands in for DirectoryClient; counts calls instead of doing HTTP."""

    def __init__(self, nodes=None, unavailable=False):
        self.nodes = list(nodes or [])
        self.unavailable = unavailable
        self.calls = 0

    async def register_node(self, node_id, pub_key):
        self.calls += 1
        if self.unavailable:
            raise DirectoryUnavailableError("registry down")
        self.nodes.append(NodeIdentity(node_id, pub_key))

    async def get_node_registry(self):
        self.calls += 1
        if self.unavailable:
            raise DirectoryUnavailableError("registry down")
        return list(self.nodes)

    async def close(self):
        pass


class MemoryTransport:
    """
    Delivers straight to in-process routers and users by port, awaiting the
    whole downstream chain so tests can inspect state right after a send.
    """

    def __init__(self):
        self.routers = {}
        self.users = {}
        self.sent = []
        self.fail_ports = set()

    def attach_router(self, router):
        self.routers[router.port] = router

    def attach_user(self, user):
        self.users[user.port] = user

    async def send_to_router(self, port, message):
        self.sent.append(("router", port, message))
        if port in self.fail_ports or port not in self.routers:
            raise ForwardingTransportError(port, "connection refused")
        await self.routers[port].receive_relay(message)
        return "Message received"

    async def send_to_user(self, port, message):
        self.sent.append(("user", port, message))
        if port in self.fail_ports or port not in self.users:
            raise ForwardingTransportError(port, "connection refused")
        self.users[port].receive_message(message)
        return "success"

    async def close(self):
        pass


@pytest.fixture(scope="session")
def key_pairs():
    # RSA-2048 generation is slow; share one pair per node id across the run.
    return {node_id: generate_rsa_key_pair() for node_id in (1, 2, 3, 4, 9)}


@pytest.fixture
def config():
    return NetworkConfig()


@pytest.fixture
def identities(key_pairs):
    return [NodeIdentity(i, export_pub_key(key_pairs[i][0])) for i in (1, 2, 3, 4)]


@pytest.fixture
def transport():
    return MemoryTransport()


@pytest.fixture
def directory(identities):
    return FakeDirectory(identities)
