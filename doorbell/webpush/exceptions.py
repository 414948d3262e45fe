"""
Web Push error taxonomy.
"""


class WebPushError(Exception):
    """Base class for all push encoding and delivery errors."""


class DecodeError(WebPushError, ValueError):
    """Malformed base64url text, key material or content-coding header."""


class VapidConfigurationError(WebPushError):
    """VAPID keys are missing, malformed or do not belong together."""


class PayloadTooLargeError(WebPushError):
    """Plaintext does not fit in a single aes128gcm record."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Payload of {size} bytes exceeds the {limit} byte single-record limit")


class PushDeliveryError(WebPushError):
    """The push service answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Push failed: {status_code} {body}".rstrip())

    @property
    def is_permanent(self) -> bool:
        """404 and 410 mean the subscription is gone for good."""
        return self.status_code in (404, 410)
