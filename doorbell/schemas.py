"""
Request and response bodies for the push API.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from doorbell.webpush import DecodeError, SubscriptionKeys, audience_for_endpoint


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SubscriptionKeysIn(BaseModel):
    p256dh: str
    auth: str


class SubscribeRequest(CamelModel):
    """Body of ``PushSubscription.toJSON()`` plus the owning user."""

    user_id: str = Field(alias="userId", min_length=1, max_length=64)
    endpoint: str = Field(min_length=1)
    keys: SubscriptionKeysIn

    @field_validator("endpoint")
    @classmethod
    def endpoint_must_be_https(cls, v: str) -> str:
        if not v.startswith("https://"):
            raise ValueError("endpoint must be an https URL")
        try:
            audience_for_endpoint(v)
        except DecodeError as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("keys")
    @classmethod
    def keys_must_decode(cls, v: SubscriptionKeysIn) -> SubscriptionKeysIn:
        try:
            SubscriptionKeys.from_base64url(v.p256dh, v.auth)
        except DecodeError as e:
            raise ValueError(str(e)) from e
        return v


class UnsubscribeRequest(CamelModel):
    user_id: str = Field(alias="userId", min_length=1, max_length=64)
    endpoint: str = Field(min_length=1)


class SendRequest(CamelModel):
    user_id: str = Field(alias="userId", min_length=1, max_length=64)
    title: str
    body: str
    data: dict[str, Any] | None = None
