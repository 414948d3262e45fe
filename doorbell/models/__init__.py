# Models package
from doorbell.db import Base
from doorbell.models.push_subscription import PushSubscription
from doorbell.models.vapid_key import VapidKey

__all__ = [
    "Base",
    "PushSubscription",
    "VapidKey",
]
