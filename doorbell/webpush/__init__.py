"""
Web Push message encryption (aes128gcm) and VAPID signing.
"""

from doorbell.webpush.encoding import decode_base64url, encode_base64url
from doorbell.webpush.encryption import (
    EncryptedPayload,
    SubscriptionKeys,
    build_header,
    decrypt,
    encrypt,
)
from doorbell.webpush.exceptions import (
    DecodeError,
    PayloadTooLargeError,
    PushDeliveryError,
    VapidConfigurationError,
    WebPushError,
)
from doorbell.webpush.vapid import (
    VapidKeyPair,
    audience_for_endpoint,
    authorization_header,
    create_vapid_assertion,
    generate_vapid_key_pair,
)

__all__ = [
    "decode_base64url",
    "encode_base64url",
    "EncryptedPayload",
    "SubscriptionKeys",
    "build_header",
    "decrypt",
    "encrypt",
    "DecodeError",
    "PayloadTooLargeError",
    "PushDeliveryError",
    "VapidConfigurationError",
    "WebPushError",
    "VapidKeyPair",
    "audience_for_endpoint",
    "authorization_header",
    "create_vapid_assertion",
    "generate_vapid_key_pair",
]
