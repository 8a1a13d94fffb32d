import pytest

from onionrelay.circuit import build_onion, resolve_circuit
from onionrelay.codec import encode_layer
from onionrelay.config import HEADER_LENGTH, NetworkConfig
from onionrelay.crypto import create_random_symmetric_key, export_prv_key, export_sym_key, rsa_encrypt, sym_encrypt
from onionrelay.errors import DecryptionError, ForwardingTransportError, MalformedAddressError
from onionrelay.client import User
from onionrelay.node import ForwardStatus, OnionRouter

from conftest import FakeDirectory


@pytest.fixture
def router(key_pairs, config, transport):
    node = OnionRouter(1, config=config, key_pair=key_pairs[1], transport=transport, directory=FakeDirectory())
    transport.attach_router(node)
    return node


async def test_relays_below_user_threshold(router, key_pairs, config, transport):
    next_router = OnionRouter(2, config=config, key_pair=key_pairs[2], transport=transport, directory=FakeDirectory())
    transport.attach_router(next_router)
    inner = encode_layer(config.user_address(3), "hi", key_pairs[2][0]).wire
    onion = encode_layer(config.router_address(2), inner, key_pairs[1][0]).wire

    result = await router.receive_relay(onion)

    assert result.status is ForwardStatus.RELAYED
    assert result.destination == config.router_address(2)
    assert transport.sent[0] == ("router", config.router_address(2), inner)
    assert router.state.last_received_encrypted_message == onion
    assert router.state.last_received_decrypted_message == inner
    assert router.state.last_message_destination == config.router_address(2)


async def test_delivers_at_or_above_user_threshold(router, key_pairs, config, transport):
    recipient = User(3, config=config, transport=transport, directory=FakeDirectory())
    onion = encode_layer(config.base_user_port, "plaintext", key_pairs[1][0]).wire
    transport.users[config.base_user_port] = recipient

    result = await router.receive_relay(onion)

    assert result.status is ForwardStatus.DELIVERED
    assert transport.sent == [("user", config.base_user_port, "plaintext")]
    assert recipient.state.last_received_message == "plaintext"


async def test_message_for_another_node_is_dropped(router, key_pairs, config, transport):
    onion = encode_layer(config.user_address(3), "hi", key_pairs[2][0]).wire

    result = await router.receive_relay(onion)

    assert result.status is ForwardStatus.FAILED
    assert isinstance(result.error, DecryptionError)
    assert transport.sent == []
    assert router.state.last_received_encrypted_message == onion
    assert router.state.last_message_destination is None
    assert router.state.last_circuit is None


async def test_garbage_is_dropped(router, transport):
    result = await router.receive_relay("not an onion")
    assert result.status is ForwardStatus.FAILED
    assert isinstance(result.error, DecryptionError)
    assert transport.sent == []


async def test_malformed_destination_is_dropped(router, key_pairs, transport):
    key = create_random_symmetric_key()
    onion = rsa_encrypt(export_sym_key(key), key_pairs[1][0]) + sym_encrypt(key, "xxxxxxxxxxhello")

    result = await router.receive_relay(onion)

    assert result.status is ForwardStatus.FAILED
    assert isinstance(result.error, MalformedAddressError)
    assert transport.sent == []


async def test_transport_failure_is_reported_not_raised(router, key_pairs, config, transport):
    port = config.router_address(9)
    transport.fail_ports.add(port)
    onion = encode_layer(port, "inner", key_pairs[1][0]).wire

    result = await router.receive_relay(onion)

    assert result.status is ForwardStatus.FAILED
    assert result.destination == port
    assert isinstance(result.error, ForwardingTransportError)
    assert len(transport.sent) == 1


async def test_circuit_trace_lists_node_once(router, key_pairs, config, transport):
    transport.fail_ports.add(config.router_address(9))
    for _ in range(3):
        await router.receive_relay(encode_layer(config.router_address(9), "x", key_pairs[1][0]).wire)
    assert router.state.last_circuit == [1]


# -----------------------------
# HTTP surface
# -----------------------------
async def test_message_route_acknowledges_before_decoding(aiohttp_client, router, transport):
    client = await aiohttp_client(router.create_app())

    resp = await client.post("/message", json={"message": "definitely not an onion"})
    assert resp.status == 200
    await router.drain()

    assert router.state.last_received_encrypted_message == "definitely not an onion"
    assert transport.sent == []


async def test_message_route_rejects_bad_body(aiohttp_client, router):
    client = await aiohttp_client(router.create_app())
    assert (await client.post("/message", json={"msg": "x"})).status == 400
    assert (await client.post("/message", json={"message": 42})).status == 400
    assert (await client.post("/message", data="{")).status == 400


async def test_observability_routes(aiohttp_client, router, identities, key_pairs, config, transport):
    transport.attach_router(OnionRouter(2, config=config, key_pair=key_pairs[2], transport=transport,
                                        directory=FakeDirectory()))
    transport.attach_router(OnionRouter(4, config=config, key_pair=key_pairs[4], transport=transport,
                                        directory=FakeDirectory()))
    onion = build_onion("hello", config.user_address(7), resolve_circuit(identities, [1, 2, 4]), config)
    client = await aiohttp_client(router.create_app())

    for path in ("/getLastReceivedEncryptedMessage", "/getLastReceivedDecryptedMessage",
                 "/getLastMessageDestination", "/getLastCircuit"):
        assert await (await client.get(path)).json() == {"result": None}

    await client.post("/message", json={"message": onion})
    await router.drain()

    assert (await (await client.get("/getLastReceivedEncryptedMessage")).json())["result"] == onion
    decrypted = (await (await client.get("/getLastReceivedDecryptedMessage")).json())["result"]
    assert len(decrypted) > HEADER_LENGTH
    assert (await (await client.get("/getLastMessageDestination")).json())["result"] == config.router_address(2)
    assert (await (await client.get("/getLastCircuit")).json())["result"] == [1]
    assert await (await client.get("/getPrivateKey")).json() == {"result": export_prv_key(key_pairs[1][1])}
    assert await (await client.get("/status")).text() == "live"


async def test_start_registers_with_directory(key_pairs, transport, unused_tcp_port):
    config = NetworkConfig(host="127.0.0.1", base_onion_router_port=unused_tcp_port - 1,
                           base_user_port=unused_tcp_port + 1000)
    directory = FakeDirectory()
    node = OnionRouter(1, config=config, key_pair=key_pairs[1], transport=transport, directory=directory)
    await node.start()
    try:
        assert [(n.node_id, n.pub_key) for n in directory.nodes] == [(1, node.pub_key)]
    finally:
        await node.stop()


async def test_failed_registration_is_logged(router, caplog):
    router.directory = FakeDirectory(unavailable=True)
    assert await router.register() is False
    assert "Failed to register" in caplog.text
