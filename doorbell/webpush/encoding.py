"""
base64url helpers (RFC 4648 section 5, unpadded).
"""

import base64
import binascii

from doorbell.webpush.exceptions import DecodeError


def decode_base64url(value: str | bytes) -> bytes:
    """Decode unpadded base64url text into bytes.

    Padding is restored before decoding so keys copied from browsers
    (which strip ``=``) decode cleanly. Characters outside the alphabet
    raise ``DecodeError`` instead of being skipped.
    """
    try:
        if isinstance(value, bytes):
            value = value.decode("ascii")
        s = value.strip().replace("-", "+").replace("_", "/")
        s += "=" * (-len(s) % 4)
        return base64.b64decode(s, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64url value: {e}") from e


def encode_base64url(data: bytes) -> str:
    """Encode bytes as base64url without padding or newlines."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")
