import argparse
import asyncio
import logging

from onionrelay.config import NetworkConfig, configure_logging
from onionrelay.launcher import launch_network
from onionrelay.visualize import circuit_graph, write_circuit_html

logger = logging.getLogger("onionrelay")


async def run_demo(args):
    config = NetworkConfig(
        host=args.host,
        registry_port=args.registry_port,
        base_onion_router_port=args.router_port,
        base_user_port=args.user_port,
        secure_circuit_selection=args.secure,
    )
    network = await launch_network(args.nodes, 2, config)
    alice, bob = network.user(0), network.user(1)
    try:
        circuit = await alice.send_message(args.message, bob.user_id, path=args.path)
        await network.drain()
        logger.info("[Network] Bob received: %r via %s", bob.state.last_received_message, circuit)

        reply = await bob.send_message(args.reply, alice.user_id)
        await network.drain()
        logger.info("[Network] Alice received: %r via %s", alice.state.last_received_message, reply)

        if args.graph:
            write_circuit_html(circuit_graph(alice.user_id, circuit, bob.user_id), args.graph,
                               title=f"User {alice.user_id} -> User {bob.user_id}")
        if args.serve:
            logger.info("[Network] Serving until interrupted")
            await asyncio.Event().wait()
    finally:
        await network.stop()


def main():
    parser = argparse.ArgumentParser(description="Run a local onion routing network and send a message through it")
    parser.add_argument("--nodes", type=int, default=5, help="Number of onion routers to launch")
    parser.add_argument("--message", default="Hello Bob! This is Alice.")
    parser.add_argument("--reply", default="Hi Alice! Bob here.")
    parser.add_argument("--path", type=int, nargs=3, metavar="NODE_ID", help="Force the circuit for the first message")
    parser.add_argument("--graph", metavar="FILE", help="Write the first circuit as an HTML graph")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--registry-port", type=int, default=NetworkConfig.registry_port)
    parser.add_argument("--router-port", type=int, default=NetworkConfig.base_onion_router_port)
    parser.add_argument("--user-port", type=int, default=NetworkConfig.base_user_port)
    parser.add_argument("--secure", action="store_true", help="Pick circuits with random.SystemRandom")
    parser.add_argument("--serve", action="store_true", help="Keep the network running after the demo")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    configure_logging(args.verbose)
    try:
        asyncio.run(run_demo(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
