# onionrelay/crypto.py
import base64

from Crypto.Cipher import AES, PKCS1_OAEP
from Crypto.Hash import SHA256
from Crypto.PublicKey import RSA
from Crypto.Random import get_random_bytes
from Crypto.Util.Padding import pad, unpad

from onionrelay.config import AES_IV_BYTES, AES_KEY_BYTES, RSA_KEY_BITS

# Every function here raises ValueError (or a subclass such as
# binascii.Error / UnicodeDecodeError) on bad input; onionrelay.codec maps
# those onto the error taxonomy.


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


# -----------------------------
# RSA key pairs
# -----------------------------
def generate_rsa_key_pair(bits=RSA_KEY_BITS):
    """Returns (public_key, private_key) as pycryptodome RsaKey objects."""
    private_key = RSA.generate(bits)
    return private_key.publickey(), private_key


def export_pub_key(public_key) -> str:
    # SubjectPublicKeyInfo, DER, base64
    return b64encode(public_key.export_key(format="DER"))


def export_prv_key(private_key) -> str:
    # PKCS#8, DER, base64
    return b64encode(private_key.export_key(format="DER", pkcs=8))


def import_pub_key(data: str):
    return RSA.import_key(b64decode(data))


def rsa_encrypt(plaintext: str, public_key) -> str:
    cipher = PKCS1_OAEP.new(public_key, hashAlgo=SHA256)
    return b64encode(cipher.encrypt(plaintext.encode("utf-8")))


def rsa_decrypt(ciphertext: str, private_key) -> str:
    cipher = PKCS1_OAEP.new(private_key, hashAlgo=SHA256)
    return cipher.decrypt(b64decode(ciphertext)).decode("utf-8")


# -----------------------------
# Symmetric Encryption (AES)
# -----------------------------
def create_random_symmetric_key() -> bytes:
    return get_random_bytes(AES_KEY_BYTES)


def export_sym_key(key: bytes) -> str:
    return b64encode(key)


def import_sym_key(data: str) -> bytes:
    key = b64decode(data)
    if len(key) != AES_KEY_BYTES:
        raise ValueError(f"Symmetric key must be {AES_KEY_BYTES} bytes, got {len(key)}.")
    return key


def aes_encrypt(key: bytes, plaintext: bytes, iv: bytes = None) -> bytes:
    # AES CBC mode with a random IV, PKCS7 padded
    if iv is None:
        iv = get_random_bytes(AES_IV_BYTES)
    cipher = AES.new(key, AES.MODE_CBC, iv=iv)
    return iv + cipher.encrypt(pad(plaintext, AES.block_size))


def aes_decrypt(key: bytes, ciphertext: bytes) -> bytes:
    if len(ciphertext) < AES_IV_BYTES + AES.block_size:
        raise ValueError("Ciphertext too short to hold an IV and one block.")
    iv = ciphertext[:AES_IV_BYTES]
    ciph = ciphertext[AES_IV_BYTES:]
    cipher = AES.new(key, AES.MODE_CBC, iv=iv)
    return unpad(cipher.decrypt(ciph), AES.block_size)


def sym_encrypt(key: bytes, plaintext: str, iv: bytes = None) -> str:
    return b64encode(aes_encrypt(key, plaintext.encode("utf-8"), iv=iv))


def sym_decrypt(key: bytes, ciphertext: str) -> str:
    return aes_decrypt(key, b64decode(ciphertext)).decode("utf-8")
