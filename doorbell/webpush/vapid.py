"""
VAPID (RFC 8292) application server identification.

Builds the ES256-signed JWT a push service uses to authenticate the sender
and the ``Authorization: vapid t=..., k=...`` header that carries it.
"""

import json
import time
from dataclasses import dataclass
from urllib.parse import urlparse

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from doorbell.webpush.ecdh import (
    CURVE,
    load_private_key,
    load_public_key,
    private_key_bytes,
    public_key_bytes,
)
from doorbell.webpush.encoding import decode_base64url, encode_base64url
from doorbell.webpush.exceptions import DecodeError, VapidConfigurationError

JWT_HEADER = {"alg": "ES256", "typ": "JWT"}
ASSERTION_LIFETIME_SECONDS = 12 * 60 * 60
COORDINATE_LENGTH = 32


@dataclass(frozen=True)
class VapidKeyPair:
    """Application server key pair as stored: base64url public point and scalar."""

    public_key: str
    private_key: str

    def signing_key(self) -> ec.EllipticCurvePrivateKey:
        """Load the private scalar and check it matches the public point.

        A mismatched pair signs happily but every push service rejects the
        result, so it is treated as a configuration error here.
        """
        try:
            public_bytes = decode_base64url(self.public_key)
            load_public_key(public_bytes)
            key = load_private_key(decode_base64url(self.private_key))
        except DecodeError as e:
            raise VapidConfigurationError(f"Malformed VAPID key: {e}") from e
        if public_key_bytes(key.public_key()) != public_bytes:
            raise VapidConfigurationError("VAPID public key does not match the private key")
        return key

    def validate(self) -> "VapidKeyPair":
        self.signing_key()
        return self


def generate_vapid_key_pair() -> VapidKeyPair:
    """Create a fresh P-256 key pair encoded for storage."""
    key = ec.generate_private_key(CURVE)
    return VapidKeyPair(
        public_key=encode_base64url(public_key_bytes(key.public_key())),
        private_key=encode_base64url(private_key_bytes(key)),
    )


def audience_for_endpoint(endpoint: str) -> str:
    """The ``aud`` claim is the scheme and host of the push endpoint."""
    try:
        parsed = urlparse(endpoint)
        parsed.port  # raises on a non-numeric or out-of-range port
    except ValueError as e:
        raise DecodeError(f"Push endpoint is not a valid URL: {e}") from e
    if not parsed.scheme or not parsed.netloc or any(c.isspace() for c in parsed.netloc):
        raise DecodeError(f"Push endpoint is not an absolute URL: {endpoint[:60]}")
    return f"{parsed.scheme}://{parsed.netloc}"


def _json_segment(obj: dict) -> str:
    return encode_base64url(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


def raw_signature(der_signature: bytes) -> bytes:
    """Convert a DER ECDSA signature into the 64-byte ``R || S`` JWS form."""
    r, s = decode_dss_signature(der_signature)
    return r.to_bytes(COORDINATE_LENGTH, "big") + s.to_bytes(COORDINATE_LENGTH, "big")


def create_vapid_assertion(
    audience: str,
    keys: VapidKeyPair,
    subject: str,
    *,
    expires_in: int = ASSERTION_LIFETIME_SECONDS,
    now: int | None = None,
) -> str:
    """Sign a compact JWT ``{aud, exp, sub}`` with the VAPID private key."""
    signing_key = keys.signing_key()
    issued = int(time.time()) if now is None else now
    claims = {
        "aud": audience,
        "exp": issued + expires_in,
        "sub": subject,
    }
    signing_input = f"{_json_segment(JWT_HEADER)}.{_json_segment(claims)}"
    der = signing_key.sign(signing_input.encode("ascii"), ec.ECDSA(hashes.SHA256()))
    return f"{signing_input}.{encode_base64url(raw_signature(der))}"


def authorization_header(token: str, public_key: str) -> str:
    return f"vapid t={token}, k={public_key}"
