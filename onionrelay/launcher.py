# onionrelay/launcher.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from onionrelay.client import User
from onionrelay.config import NetworkConfig
from onionrelay.crypto import generate_rsa_key_pair
from onionrelay.network import Registry
from onionrelay.node import OnionRouter

logger = logging.getLogger(__name__)


@dataclass
class Network:
    config: NetworkConfig
    registry: Registry
    nodes: List[OnionRouter] = field(default_factory=list)
    users: List[User] = field(default_factory=list)

    def node(self, node_id: int) -> OnionRouter:
        return next(n for n in self.nodes if n.node_id == node_id)

    def user(self, user_id: int) -> User:
        return next(u for u in self.users if u.user_id == user_id)

    async def drain(self) -> None:
        # A relay's task can start another relay's task, so loop until quiet.
        participants = [*self.users, *self.nodes]
        while any(p.busy for p in participants):
            for p in participants:
                await p.drain()

    async def stop(self) -> None:
        await self.drain()
        for participant in [*self.users, *self.nodes]:
            await participant.stop()
        await self.registry.stop()
        logger.info("[Network] Stopped")


async def launch_network(num_nodes: int, num_users: int, config: Optional[NetworkConfig] = None,
                         key_pairs: Optional[Sequence] = None) -> Network:
    """
    Start a registry, `num_nodes` relays (ids 0..num_nodes-1, each registered
    before this returns) and `num_users` users (ids 0..num_users-1).

    `key_pairs`, if given, supplies (public, private) pairs for the relays in
    id order instead of generating fresh ones.
    """
    config = config or NetworkConfig()
    if key_pairs is None:
        key_pairs = await asyncio.gather(*[asyncio.to_thread(generate_rsa_key_pair) for _ in range(num_nodes)])
    elif len(key_pairs) < num_nodes:
        raise ValueError(f"Need {num_nodes} key pairs, got {len(key_pairs)}.")

    registry = Registry(config)
    await registry.start()
    network = Network(config, registry)

    try:
        for node_id, key_pair in enumerate(key_pairs[:num_nodes]):
            node = OnionRouter(node_id, config=config, key_pair=key_pair)
            await node.start()
            network.nodes.append(node)
        logger.info("[Network] Registered nodes: %s", list(range(num_nodes)))

        for user_id in range(num_users):
            user = User(user_id, config=config)
            await user.start()
            network.users.append(user)
        logger.info("[Network] Registered users: %s", list(range(num_users)))
    except OSError:
        # Port already taken; release whatever did come up.
        await network.stop()
        raise
    return network
