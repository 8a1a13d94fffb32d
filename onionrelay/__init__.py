"""
onionrelay - a minimal onion routing overlay.

- codec.py    : one onion layer (RSA-wrapped AES key + AES body)
- circuit.py  : circuit selection and onion construction
- node.py     : relay that peels one layer and forwards
- client.py   : user that sends and receives messages
- network.py  : key directory, registry server and client
"""

__version__ = "0.1.0"
