# onionrelay/visualize.py
import logging
from typing import Sequence

import networkx as nx
from pyvis.network import Network

logger = logging.getLogger(__name__)


def user_label(user_id):
    return f"U{user_id}"


def circuit_graph(sender_id: int, circuit: Sequence[int], destination_id: int) -> nx.DiGraph:
    """
    Directed graph of one message's path: sender -> entry -> ... -> exit ->
    recipient. Node keys are ints for relays and "U<id>" for users.
    """
    G = nx.DiGraph()
    G.add_node(user_label(sender_id), label=f"User {sender_id}", role="sender")
    for node_id in circuit:
        G.add_node(node_id, label=f"Node {node_id}", role="relay")
    G.add_node(user_label(destination_id), label=f"User {destination_id}", role="recipient")

    hops = [user_label(sender_id), *circuit, user_label(destination_id)]
    for i, (src, dst) in enumerate(zip(hops, hops[1:])):
        G.add_edge(src, dst, label=f"hop {i + 1}")
    return G


def write_circuit_html(G: nx.DiGraph, output_file: str, title: str = "") -> str:
    net = Network(directed=True, height="600px", width="100%", notebook=False, cdn_resources="remote")
    net.from_nx(G)
    if title:
        net.heading = title
    net.write_html(output_file, notebook=False)
    logger.info("[Visualizer] Wrote circuit graph to '%s'", output_file)
    return output_file
