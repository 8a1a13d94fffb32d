# onionrelay/circuit.py
import logging
import random
from typing import Dict, Iterable, List, Sequence

from onionrelay.codec import encode_layer
from onionrelay.config import CIRCUIT_LENGTH, NetworkConfig
from onionrelay.crypto import import_pub_key
from onionrelay.errors import InsufficientNodesError, InvalidCircuitError
from onionrelay.network import NodeIdentity

logger = logging.getLogger(__name__)


def distinct_nodes(nodes: Iterable[NodeIdentity]) -> Dict[int, NodeIdentity]:
    # Later registrations of the same id replace earlier ones (re-keyed node).
    by_id: Dict[int, NodeIdentity] = {}
    for node in nodes:
        by_id[node.node_id] = node
    return by_id


def usable_nodes(nodes: Iterable[NodeIdentity], config: NetworkConfig) -> List[NodeIdentity]:
    """
    Latest registration per id, minus the ones no circuit can use: ids
    outside the router range and public keys that do not import. Each
    skipped entry is logged.
    """
    usable = []
    for node in distinct_nodes(nodes).values():
        if not (0 <= node.node_id < config.max_nodes):
            logger.warning("Skipping Node %d: id outside [0, %d)", node.node_id, config.max_nodes)
            continue
        try:
            import_pub_key(node.pub_key)
        except (ValueError, IndexError, TypeError) as e:
            logger.warning("Skipping Node %d: unusable public key (%s)", node.node_id, e)
            continue
        usable.append(node)
    return usable


def select_circuit(nodes: Sequence[NodeIdentity], length=CIRCUIT_LENGTH, rng=None) -> List[NodeIdentity]:
    """
    Pick `length` distinct relays uniformly at random, in path order
    (entry first).
    """
    candidates = list(distinct_nodes(nodes).values())
    if len(candidates) < length:
        raise InsufficientNodesError(
            f"Need {length} distinct nodes for a circuit, only {len(candidates)} registered."
        )
    rng = rng or random
    return rng.sample(candidates, length)


def resolve_circuit(nodes: Sequence[NodeIdentity], node_ids: Sequence[int]) -> List[NodeIdentity]:
    """Force a path through the given node ids, in order."""
    if not isinstance(node_ids, (list, tuple)) or not all(
        isinstance(i, int) and not isinstance(i, bool) for i in node_ids
    ):
        raise InvalidCircuitError(f"A path is a list of node ids, got {node_ids!r}.")
    by_id = distinct_nodes(nodes)
    missing = [i for i in node_ids if i not in by_id]
    if missing:
        raise InvalidCircuitError(f"Nodes {missing} are not registered.")
    circuit = [by_id[i] for i in node_ids]
    check_circuit(circuit)
    return circuit


def check_circuit(circuit: Sequence[NodeIdentity]) -> None:
    ids = [node.node_id for node in circuit]
    if len(ids) != CIRCUIT_LENGTH:
        raise InvalidCircuitError(f"A circuit has exactly {CIRCUIT_LENGTH} nodes, got {len(ids)}.")
    if len(set(ids)) != len(ids):
        raise InvalidCircuitError(f"Circuit {ids} repeats a node.")


def build_onion(message: str, destination_address: int, circuit: Sequence[NodeIdentity], config: NetworkConfig) -> str:
    """
    Wrap `message` once per hop, exit node first, so that the entry node's
    layer ends up outermost. Returns the wire form to send to circuit[0].
    """
    check_circuit(circuit)
    payload = message
    for i in reversed(range(len(circuit))):
        node = circuit[i]
        if i == len(circuit) - 1:
            next_hop = destination_address
        else:
            next_hop = config.router_address(circuit[i + 1].node_id)
        payload = encode_layer(next_hop, payload, import_pub_key(node.pub_key)).wire
        logger.debug("Layer %d for Node %d -> port %d (%d chars)", len(circuit) - i, node.node_id, next_hop, len(payload))
    return payload
