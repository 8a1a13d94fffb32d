# onionrelay/errors.py


class OnionError(Exception):
    """Base class for every failure raised by onionrelay."""


class DecryptionError(OnionError):
    """A layer's header or body could not be decrypted with the given key."""


class MalformedAddressError(OnionError):
    """A destination field is not a fixed-width decimal address."""


class InsufficientNodesError(OnionError):
    """Fewer distinct relays are registered than a circuit needs."""


class InvalidCircuitError(OnionError):
    """A hand-made circuit has the wrong length, repeats a node or names an unknown one."""


class ForwardingTransportError(OnionError):
    """An outbound POST to the next hop or recipient failed."""

    def __init__(self, port, reason):
        super().__init__(f"POST to port {port} failed: {reason}")
        self.port = port
        self.reason = reason


class DirectoryUnavailableError(OnionError):
    """The key directory could not be reached or answered with an error."""
