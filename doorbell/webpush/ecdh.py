"""
P-256 key agreement for message encryption.

Every message gets its own ephemeral key pair; nothing here is cached or
persisted.
"""

from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from doorbell.webpush.exceptions import DecodeError

CURVE = ec.SECP256R1()
PUBLIC_KEY_LENGTH = 65  # 0x04 || X || Y
PRIVATE_KEY_LENGTH = 32


@dataclass(frozen=True)
class EphemeralKeyPair:
    """Sender key pair used for exactly one message."""

    public_key_bytes: bytes
    private_key: ec.EllipticCurvePrivateKey


def public_key_bytes(key: ec.EllipticCurvePublicKey) -> bytes:
    """Serialize a public key as an uncompressed X9.62 point."""
    return key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )


def generate_ephemeral_key_pair() -> EphemeralKeyPair:
    private_key = ec.generate_private_key(CURVE)
    return EphemeralKeyPair(
        public_key_bytes=public_key_bytes(private_key.public_key()),
        private_key=private_key,
    )


def ephemeral_key_pair_from_private(private_key: ec.EllipticCurvePrivateKey) -> EphemeralKeyPair:
    """Wrap an existing private key, for callers that need a fixed sender key."""
    return EphemeralKeyPair(
        public_key_bytes=public_key_bytes(private_key.public_key()),
        private_key=private_key,
    )


def load_public_key(data: bytes) -> ec.EllipticCurvePublicKey:
    """Load an uncompressed P-256 point, rejecting anything else.

    Compressed points and truncated keys are refused up front so a bad
    ``p256dh`` fails loudly instead of producing undecryptable messages.
    """
    if len(data) != PUBLIC_KEY_LENGTH or data[0] != 0x04:
        raise DecodeError(
            f"Public key must be a {PUBLIC_KEY_LENGTH}-byte uncompressed P-256 point, got {len(data)} bytes"
        )
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, data)
    except ValueError as e:
        raise DecodeError(f"Public key is not a valid P-256 point: {e}") from e


def load_private_key(data: bytes) -> ec.EllipticCurvePrivateKey:
    """Load a raw 32-byte P-256 private scalar."""
    if len(data) != PRIVATE_KEY_LENGTH:
        raise DecodeError(f"Private key must be {PRIVATE_KEY_LENGTH} bytes, got {len(data)}")
    try:
        return ec.derive_private_key(int.from_bytes(data, "big"), CURVE)
    except ValueError as e:
        raise DecodeError(f"Private key is not a valid P-256 scalar: {e}") from e


def private_key_bytes(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_numbers().private_value.to_bytes(PRIVATE_KEY_LENGTH, "big")


def derive_shared_secret(local_private_key: ec.EllipticCurvePrivateKey, remote_public_key: bytes) -> bytes:
    """ECDH over P-256; returns the 32-byte X coordinate of the shared point."""
    peer = load_public_key(remote_public_key)
    return local_private_key.exchange(ec.ECDH(), peer)
