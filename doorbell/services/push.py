"""
Push notification service: encrypts and delivers Web Push messages.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from doorbell.models.push_subscription import PushSubscription
from doorbell.services import subscriptions as subscription_store
from doorbell.services.vapid_keys import VapidKeyProvider, vapid_key_provider
from doorbell.settings import Settings, settings as default_settings
from doorbell.webpush import (
    PushDeliveryError,
    SubscriptionKeys,
    VapidConfigurationError,
    VapidKeyPair,
    WebPushError,
    audience_for_endpoint,
    authorization_header,
    create_vapid_assertion,
    encrypt,
)

logger = logging.getLogger(__name__)


@dataclass
class PushResult:
    """Outcome of one send to one subscription."""

    endpoint: str
    success: bool
    error: str | None = None
    status_code: int | None = None
    permanent: bool = False
    subscription_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"endpoint": self.endpoint, "success": self.success}
        if self.error is not None:
            data["error"] = self.error
        if self.status_code is not None:
            data["statusCode"] = self.status_code
        return data


@dataclass
class DispatchOutcome:
    success: bool
    results: list[PushResult] = field(default_factory=list)
    message: str | None = None

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
        }
        if self.message:
            data["message"] = self.message
        return data


def _endpoint_host(endpoint: str) -> str:
    try:
        return urlparse(endpoint).netloc or "unknown"
    except ValueError:
        return "unknown"


class PushNotificationService:
    """Service for sending web push notifications."""

    def __init__(
        self,
        settings: Settings = default_settings,
        key_provider: VapidKeyProvider = vapid_key_provider,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.key_provider = key_provider
        # Lets tests substitute httpx.MockTransport for real push services
        self.transport = transport

    def build_payload(self, title: str, body: str, data: Optional[dict] = None) -> str:
        """JSON document the service worker shows as a notification."""
        payload = {
            "title": title,
            "body": body,
            "icon": self.settings.push_icon,
            "badge": self.settings.push_badge,
            "data": data or {},
        }
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)

    def build_headers(self, endpoint: str, vapid_keys: VapidKeyPair) -> dict[str, str]:
        token = create_vapid_assertion(
            audience_for_endpoint(endpoint),
            vapid_keys,
            self.settings.vapid_subject,
        )
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Encoding": "aes128gcm",
            "TTL": str(self.settings.push_ttl_seconds),
            "Urgency": self.settings.push_urgency,
            "Authorization": authorization_header(token, vapid_keys.public_key),
        }
        if self.settings.push_topic:
            headers["Topic"] = self.settings.push_topic
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.push_timeout_seconds,
            transport=self.transport,
        )

    async def send_to_subscription(
        self,
        subscription: PushSubscription,
        payload: str,
        vapid_keys: VapidKeyPair,
        client: Optional[httpx.AsyncClient] = None,
    ) -> PushResult:
        """Encrypt and POST one message.

        Per-subscription problems (bad keys, oversized payload, network
        errors, non-2xx answers) come back as a failed ``PushResult``.
        A broken VAPID configuration raises, since it dooms every send.
        """
        endpoint = subscription.endpoint
        result = PushResult(endpoint=endpoint, success=False, subscription_id=subscription.id)

        try:
            keys = SubscriptionKeys.from_base64url(subscription.p256dh, subscription.auth)
            encrypted = encrypt(payload, keys, record_size=self.settings.push_record_size)
            headers = self.build_headers(endpoint, vapid_keys)
        except VapidConfigurationError:
            raise
        except WebPushError as e:
            logger.error("Push encoding failed for subscription %s: %s", subscription.id, e)
            result.error = str(e)
            return result
        except Exception as e:
            # Catch crypto/URL errors that are not WebPushError
            logger.exception("Unexpected error preparing push for subscription %s", subscription.id)
            result.error = f"Push encoding error: {e}"
            return result

        if client is None:
            async with self._client() as own_client:
                return await self._post(own_client, subscription, encrypted.body, headers, result)
        return await self._post(client, subscription, encrypted.body, headers, result)

    async def _post(
        self,
        client: httpx.AsyncClient,
        subscription: PushSubscription,
        body: bytes,
        headers: dict[str, str],
        result: PushResult,
    ) -> PushResult:
        host = _endpoint_host(subscription.endpoint)
        try:
            response = await client.post(subscription.endpoint, content=body, headers=headers)
        except httpx.TimeoutException:
            logger.warning("Push to %s timed out (subscription %s)", host, subscription.id)
            result.error = f"Push timed out after {self.settings.push_timeout_seconds}s"
            return result
        except httpx.HTTPError as e:
            logger.error("Push transport error for subscription %s: %s", subscription.id, e)
            result.error = f"Push transport error: {e}"
            return result
        except Exception as e:
            # httpx.InvalidURL and friends are not HTTPError subclasses
            logger.exception("Unexpected error sending push to subscription %s", subscription.id)
            result.error = f"Push transport error: {e}"
            return result

        result.status_code = response.status_code
        if response.is_success:
            result.success = True
            logger.info("Successfully sent push to subscription %s (%s)", subscription.id, host)
            return result

        error = PushDeliveryError(response.status_code, response.text)
        result.error = str(error)
        result.permanent = error.is_permanent
        logger.error(
            "Push notification failed for subscription %s: status %s",
            subscription.id, response.status_code,
        )
        return result

    async def dispatch_to_user(
        self,
        db: AsyncSession,
        user_id: str,
        title: str,
        body: str,
        data: Optional[dict] = None,
    ) -> DispatchOutcome:
        """Send a notification to every subscription a user has.

        Each subscription succeeds or fails on its own. Subscriptions the
        push service reports as gone (404/410) are deleted; any other
        failure keeps the subscription for a later attempt.
        """
        # Fails the whole call before anything is sent
        vapid_keys = await self.key_provider.load(db)

        subscriptions = await subscription_store.list_for_user(db, user_id)
        if not subscriptions:
            logger.warning("No push subscriptions found for user %s", user_id)
            return DispatchOutcome(success=False, message="No subscriptions found")

        logger.info("Sending push notification to user %s (%d subscriptions): %s",
                    user_id, len(subscriptions), title)
        payload = self.build_payload(title, body, data)

        semaphore = asyncio.Semaphore(max(1, self.settings.push_max_concurrency))
        async with self._client() as client:
            async def send(sub: PushSubscription) -> PushResult:
                async with semaphore:
                    return await self.send_to_subscription(sub, payload, vapid_keys, client=client)

            gathered = await asyncio.gather(*(send(sub) for sub in subscriptions), return_exceptions=True)

        results: list[PushResult] = []
        for sub, item in zip(subscriptions, gathered):
            if isinstance(item, VapidConfigurationError) or not isinstance(item, (PushResult, Exception)):
                raise item
            if isinstance(item, Exception):
                logger.error("Push to subscription %s failed unexpectedly: %s", sub.id, item)
                item = PushResult(
                    endpoint=sub.endpoint, success=False, error=str(item), subscription_id=sub.id
                )
            results.append(item)

        # Clean up invalid subscriptions
        for result in results:
            if result.permanent and result.subscription_id is not None:
                await subscription_store.delete_by_id(db, result.subscription_id)
                logger.info("Removed invalid subscription %s", result.subscription_id)

        return DispatchOutcome(success=True, results=results)


# Singleton instance
push_service = PushNotificationService()
