# onionrelay/codec.py
"""
One onion layer on the wire:

    header (HEADER_LENGTH chars)   base64(RSA-OAEP(base64(aes key)))
    body   (rest)                  base64(iv + AES-CBC(destination + payload))

destination is ADDRESS_WIDTH zero-padded decimal digits. payload is either
the next layer's wire form or, at the last hop, the plaintext message. The
codec cannot tell which; the relay decides from the destination.
"""
import logging
from dataclasses import dataclass
from typing import NamedTuple

from onionrelay.config import ADDRESS_WIDTH, HEADER_LENGTH
from onionrelay.crypto import (
    create_random_symmetric_key,
    export_sym_key,
    import_sym_key,
    rsa_decrypt,
    rsa_encrypt,
    sym_decrypt,
    sym_encrypt,
)
from onionrelay.errors import DecryptionError, MalformedAddressError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Layer:
    header: str
    body: str

    @property
    def wire(self) -> str:
        return self.header + self.body

    def __len__(self):
        return len(self.header) + len(self.body)

    def __str__(self):
        return self.wire


class DecodedLayer(NamedTuple):
    next_hop: int
    payload: str


def encode_destination(address: int) -> str:
    if address < 0:
        raise MalformedAddressError(f"Address {address} is negative.")
    field = str(address).zfill(ADDRESS_WIDTH)
    if len(field) != ADDRESS_WIDTH:
        raise MalformedAddressError(f"Address {address} does not fit in {ADDRESS_WIDTH} digits.")
    return field


def decode_destination(field: str) -> int:
    if len(field) != ADDRESS_WIDTH or not (field.isascii() and field.isdigit()):
        raise MalformedAddressError(f"Destination field {field!r} is not {ADDRESS_WIDTH} decimal digits.")
    return int(field, 10)


def encode_layer(next_hop_address, payload, recipient_public_key, symmetric_key=None, iv=None) -> Layer:
    """
    Wrap `payload` for the holder of `recipient_public_key`, who will learn
    `next_hop_address` and nothing else about the path.

    A fresh AES key is generated unless one is passed in. Passing both
    `symmetric_key` and `iv` makes the body deterministic (tests only); the
    header stays randomized by OAEP.
    """
    if symmetric_key is None:
        symmetric_key = create_random_symmetric_key()
    body = sym_encrypt(symmetric_key, encode_destination(next_hop_address) + payload, iv=iv)
    header = rsa_encrypt(export_sym_key(symmetric_key), recipient_public_key)
    if len(header) != HEADER_LENGTH:
        raise ValueError(
            f"Header is {len(header)} characters, expected {HEADER_LENGTH}; "
            "the recipient key size does not match the protocol."
        )
    return Layer(header, body)


def decode_layer(onion: str, private_key) -> DecodedLayer:
    """Peel one layer. Raises DecryptionError or MalformedAddressError."""
    if len(onion) <= HEADER_LENGTH:
        raise DecryptionError(f"Onion of {len(onion)} characters has no body after the {HEADER_LENGTH}-character header.")
    header, body = onion[:HEADER_LENGTH], onion[HEADER_LENGTH:]

    try:
        symmetric_key = import_sym_key(rsa_decrypt(header, private_key))
    except (ValueError, TypeError) as e:
        raise DecryptionError(f"Header decryption failed: {e}") from e

    try:
        layer = sym_decrypt(symmetric_key, body)
    except ValueError as e:
        raise DecryptionError(f"Body decryption failed: {e}") from e

    next_hop = decode_destination(layer[:ADDRESS_WIDTH])
    logger.debug("Decoded layer for port %d (%d bytes remaining)", next_hop, len(layer) - ADDRESS_WIDTH)
    return DecodedLayer(next_hop, layer[ADDRESS_WIDTH:])
