"""
HKDF-SHA256 (RFC 5869) and the key-derivation context used for push messages.
"""

import struct

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from doorbell.webpush.ecdh import PUBLIC_KEY_LENGTH
from doorbell.webpush.exceptions import DecodeError

AUTH_INFO = b"Content-Encoding: auth\x00"
CEK_LABEL = "Content-Encoding: aes128gcm"
NONCE_LABEL = "Content-Encoding: nonce"

PRK_LENGTH = 32
CEK_LENGTH = 16
NONCE_LENGTH = 12


def hkdf(salt: bytes, ikm: bytes, info: bytes, length: int) -> bytes:
    """Extract-then-expand with SHA-256, returning exactly ``length`` bytes."""
    return HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    ).derive(ikm)


def build_key_context(client_public_key: bytes, server_public_key: bytes) -> bytes:
    """``0x00 || len16(client) || client || len16(server) || server``."""
    for name, key in (("client", client_public_key), ("server", server_public_key)):
        if len(key) != PUBLIC_KEY_LENGTH:
            raise DecodeError(f"{name} public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(key)}")
    return (
        b"\x00"
        + struct.pack("!H", len(client_public_key))
        + client_public_key
        + struct.pack("!H", len(server_public_key))
        + server_public_key
    )


def build_context_info(label: str, context: bytes) -> bytes:
    """``label || 0x00 || context``."""
    return label.encode("ascii") + b"\x00" + context


def derive_pseudo_random_key(auth_secret: bytes, shared_secret: bytes) -> bytes:
    return hkdf(auth_secret, shared_secret, AUTH_INFO, PRK_LENGTH)


def derive_content_key_and_nonce(
    shared_secret: bytes,
    auth_secret: bytes,
    salt: bytes,
    client_public_key: bytes,
    server_public_key: bytes,
) -> tuple[bytes, bytes]:
    """Run the full derivation chain and return ``(cek, nonce)``.

    The order is fixed: the auth secret mixes into the shared secret first,
    then the record salt derives the 16-byte content key and the 12-byte nonce
    with the same context block.
    """
    prk = derive_pseudo_random_key(auth_secret, shared_secret)
    context = build_key_context(client_public_key, server_public_key)
    cek = hkdf(salt, prk, build_context_info(CEK_LABEL, context), CEK_LENGTH)
    nonce = hkdf(salt, prk, build_context_info(NONCE_LABEL, context), NONCE_LENGTH)
    return cek, nonce
