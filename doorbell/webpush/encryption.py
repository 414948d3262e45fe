"""
Payload encryption with the aes128gcm content coding.

A message is always a single record: ``header || AES-128-GCM(0x02 || payload)``.
The 86-byte header carries the salt, record size and the sender's ephemeral
public key so the browser can re-derive the content key.
"""

import os
import struct
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from doorbell.webpush.ecdh import (
    PUBLIC_KEY_LENGTH,
    EphemeralKeyPair,
    derive_shared_secret,
    generate_ephemeral_key_pair,
    public_key_bytes,
)
from doorbell.webpush.encoding import decode_base64url
from doorbell.webpush.exceptions import DecodeError, PayloadTooLargeError
from doorbell.webpush.hkdf import derive_content_key_and_nonce

SALT_LENGTH = 16
AUTH_SECRET_LENGTH = 16
TAG_LENGTH = 16
RECORD_SIZE = 4096
PADDING_DELIMITER = b"\x02"
HEADER_LENGTH = SALT_LENGTH + 4 + 1 + PUBLIC_KEY_LENGTH  # 86


@dataclass(frozen=True)
class SubscriptionKeys:
    """Decoded ``p256dh`` and ``auth`` secrets of one push subscription."""

    p256dh: bytes
    auth: bytes

    @classmethod
    def from_base64url(cls, p256dh: str, auth: str) -> "SubscriptionKeys":
        client_key = decode_base64url(p256dh)
        if len(client_key) != PUBLIC_KEY_LENGTH or client_key[0] != 0x04:
            raise DecodeError(
                f"p256dh must decode to a {PUBLIC_KEY_LENGTH}-byte uncompressed point, got {len(client_key)} bytes"
            )
        auth_secret = decode_base64url(auth)
        if len(auth_secret) != AUTH_SECRET_LENGTH:
            raise DecodeError(f"auth must decode to {AUTH_SECRET_LENGTH} bytes, got {len(auth_secret)}")
        return cls(p256dh=client_key, auth=auth_secret)


@dataclass(frozen=True)
class EncryptedPayload:
    ciphertext: bytes
    salt: bytes
    local_public_key: bytes
    record_size: int = RECORD_SIZE

    @property
    def body(self) -> bytes:
        """The exact request body for the push service."""
        return build_header(self.salt, self.local_public_key, self.record_size) + self.ciphertext


def max_payload_size(record_size: int = RECORD_SIZE) -> int:
    """Largest plaintext that still fits one record after padding and tag."""
    return record_size - TAG_LENGTH - len(PADDING_DELIMITER)


def build_header(salt: bytes, server_public_key: bytes, record_size: int = RECORD_SIZE) -> bytes:
    """Assemble ``salt(16) || rs(4, big-endian) || idlen(1) || keyid(65)``."""
    if len(salt) != SALT_LENGTH:
        raise ValueError(f"Salt must be {SALT_LENGTH} bytes, got {len(salt)}")
    if len(server_public_key) != PUBLIC_KEY_LENGTH:
        raise ValueError(f"Server public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(server_public_key)}")
    return salt + struct.pack("!IB", record_size, len(server_public_key)) + server_public_key


def parse_header(body: bytes) -> tuple[bytes, int, bytes, bytes]:
    """Split a message body into ``(salt, record_size, key_id, ciphertext)``."""
    if len(body) < SALT_LENGTH + 5:
        raise DecodeError("Body too short for an aes128gcm header")
    salt = body[:SALT_LENGTH]
    record_size, key_id_length = struct.unpack("!IB", body[SALT_LENGTH:SALT_LENGTH + 5])
    start = SALT_LENGTH + 5
    key_id = body[start:start + key_id_length]
    if len(key_id) != key_id_length:
        raise DecodeError("Truncated key id in aes128gcm header")
    return salt, record_size, key_id, body[start + key_id_length:]


def pad(plaintext: bytes) -> bytes:
    return PADDING_DELIMITER + plaintext


def encrypt(
    payload: str | bytes,
    keys: SubscriptionKeys,
    *,
    salt: bytes | None = None,
    ephemeral: EphemeralKeyPair | None = None,
    record_size: int = RECORD_SIZE,
) -> EncryptedPayload:
    """Encrypt ``payload`` for one subscriber.

    ``salt`` and ``ephemeral`` exist for known-answer tests only; production
    callers leave them unset so every message gets a fresh salt and key pair.
    """
    if isinstance(payload, str):
        payload = payload.encode("utf-8")

    limit = max_payload_size(record_size)
    if len(payload) > limit:
        raise PayloadTooLargeError(len(payload), limit)

    if ephemeral is None:
        ephemeral = generate_ephemeral_key_pair()
    if salt is None:
        salt = os.urandom(SALT_LENGTH)
    elif len(salt) != SALT_LENGTH:
        raise ValueError(f"Salt must be {SALT_LENGTH} bytes, got {len(salt)}")

    shared_secret = derive_shared_secret(ephemeral.private_key, keys.p256dh)
    cek, nonce = derive_content_key_and_nonce(
        shared_secret,
        keys.auth,
        salt,
        client_public_key=keys.p256dh,
        server_public_key=ephemeral.public_key_bytes,
    )
    ciphertext = AESGCM(cek).encrypt(nonce, pad(payload), None)

    return EncryptedPayload(
        ciphertext=ciphertext,
        salt=salt,
        local_public_key=ephemeral.public_key_bytes,
        record_size=record_size,
    )


def decrypt(body: bytes, private_key: ec.EllipticCurvePrivateKey, auth_secret: bytes) -> bytes:
    """Receiver side: recover the padded plaintext from a message body.

    Mirrors what the subscriber's browser does with its own key pair. The
    returned bytes still start with the padding delimiter.
    """
    salt, _record_size, server_public_key, ciphertext = parse_header(body)
    if len(server_public_key) != PUBLIC_KEY_LENGTH:
        raise DecodeError(f"Key id must be a {PUBLIC_KEY_LENGTH}-byte public key, got {len(server_public_key)}")

    client_public_key = public_key_bytes(private_key.public_key())
    shared_secret = derive_shared_secret(private_key, server_public_key)
    cek, nonce = derive_content_key_and_nonce(
        shared_secret,
        auth_secret,
        salt,
        client_public_key=client_public_key,
        server_public_key=server_public_key,
    )
    try:
        return AESGCM(cek).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise DecodeError("Ciphertext failed authentication") from e
