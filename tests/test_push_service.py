import json

import httpx
import pytest

from conftest import make_subscriber
from doorbell.services import subscriptions as subscription_store
from doorbell.services.push import PushNotificationService
from doorbell.services.vapid_keys import VapidKeyProvider
from doorbell.webpush import VapidConfigurationError, decode_base64url, decrypt

USER_ID = "3f1c2a9e-0000-4000-8000-000000000001"


class FakePushService:
    """Records requests and answers with a per-endpoint status code."""

    def __init__(self, statuses: dict[str, int] | None = None, default: int = 201):
        self.statuses = statuses or {}
        self.default = default
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.get(str(request.url), self.default)
        return httpx.Response(status, text="" if status < 400 else "push service says no")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def make_service(settings, fake, **overrides) -> PushNotificationService:
    if overrides:
        settings = settings.model_copy(update=overrides)
    return PushNotificationService(
        settings=settings,
        key_provider=VapidKeyProvider(settings),
        transport=fake.transport,
    )


async def add_subscription(db, subscriber, endpoint, user_id=USER_ID):
    return await subscription_store.upsert(
        db, user_id=user_id, endpoint=endpoint, p256dh=subscriber.p256dh, auth=subscriber.auth
    )


async def test_send_to_subscription_wire_format(db_session, test_settings, subscriber, vapid_keys):
    fake = FakePushService()
    service = make_service(test_settings, fake)
    sub = await add_subscription(db_session, subscriber, "https://fcm.googleapis.com/fcm/send/abc")
    payload = service.build_payload("Doorbell", "Someone is at the door", {"url": "/"})

    result = await service.send_to_subscription(sub, payload, vapid_keys)

    assert result.success is True
    assert result.status_code == 201
    request = fake.requests[0]
    assert request.method == "POST"
    assert request.headers["Content-Type"] == "application/octet-stream"
    assert request.headers["Content-Encoding"] == "aes128gcm"
    assert request.headers["TTL"] == "86400"
    assert request.headers["Urgency"] == "high"
    assert request.headers["Topic"] == "doorbell"

    auth = request.headers["Authorization"]
    assert auth.startswith("vapid t=")
    assert auth.endswith(f", k={vapid_keys.public_key}")
    token = auth[len("vapid t="):auth.index(", k=")]
    claims = json.loads(decode_base64url(token.split(".")[1]))
    assert claims["aud"] == "https://fcm.googleapis.com"
    assert claims["sub"] == "mailto:alerts@doorbell.test"

    plaintext = decrypt(request.content, subscriber.private_key, subscriber.auth_secret)
    assert plaintext[:1] == b"\x02"
    assert json.loads(plaintext[1:]) == {
        "title": "Doorbell",
        "body": "Someone is at the door",
        "icon": "/pwa-192x192.png",
        "badge": "/pwa-192x192.png",
        "data": {"url": "/"},
    }


async def test_dispatch_partial_failure_prunes_only_gone_subscription(db_session, test_settings):
    gone = "https://updates.push.services.mozilla.com/wpush/v2/gone"
    alive = "https://fcm.googleapis.com/fcm/send/alive"
    fake = FakePushService({gone: 410, alive: 200})
    service = make_service(test_settings, fake)
    await add_subscription(db_session, make_subscriber(), gone)
    await add_subscription(db_session, make_subscriber(), alive)

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert outcome.success is True
    by_endpoint = {r.endpoint: r for r in outcome.results}
    assert by_endpoint[alive].success is True
    assert by_endpoint[gone].success is False
    assert by_endpoint[gone].status_code == 410
    assert "410" in by_endpoint[gone].error
    assert outcome.sent_count == 1

    remaining = await subscription_store.list_for_user(db_session, USER_ID)
    assert [s.endpoint for s in remaining] == [alive]


async def test_dispatch_prunes_not_found(db_session, test_settings):
    endpoint = "https://fcm.googleapis.com/fcm/send/unknown"
    service = make_service(test_settings, FakePushService({endpoint: 404}))
    await add_subscription(db_session, make_subscriber(), endpoint)

    await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert await subscription_store.list_for_user(db_session, USER_ID) == []


@pytest.mark.parametrize("status", [400, 413, 429, 500, 503])
async def test_dispatch_keeps_subscription_on_other_errors(db_session, test_settings, status):
    endpoint = "https://fcm.googleapis.com/fcm/send/flaky"
    service = make_service(test_settings, FakePushService({endpoint: status}))
    await add_subscription(db_session, make_subscriber(), endpoint)

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert outcome.results[0].success is False
    assert outcome.results[0].status_code == status
    assert len(await subscription_store.list_for_user(db_session, USER_ID)) == 1


async def test_timeout_is_transient(db_session, test_settings):
    def handler(request):
        raise httpx.ReadTimeout("stalled", request=request)

    service = PushNotificationService(
        settings=test_settings,
        key_provider=VapidKeyProvider(test_settings),
        transport=httpx.MockTransport(handler),
    )
    await add_subscription(db_session, make_subscriber(), "https://fcm.googleapis.com/fcm/send/slow")

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert outcome.results[0].success is False
    assert "timed out" in outcome.results[0].error
    assert len(await subscription_store.list_for_user(db_session, USER_ID)) == 1


async def test_connection_error_is_reported(db_session, test_settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    service = PushNotificationService(
        settings=test_settings,
        key_provider=VapidKeyProvider(test_settings),
        transport=httpx.MockTransport(handler),
    )
    await add_subscription(db_session, make_subscriber(), "https://fcm.googleapis.com/fcm/send/down")

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert outcome.results[0].success is False
    assert "transport error" in outcome.results[0].error
    assert len(await subscription_store.list_for_user(db_session, USER_ID)) == 1


async def test_malformed_subscription_does_not_abort_batch(db_session, test_settings):
    fake = FakePushService()
    service = make_service(test_settings, fake)
    await subscription_store.upsert(
        db_session, user_id=USER_ID, endpoint="https://fcm.googleapis.com/fcm/send/bad",
        p256dh="fakep256dhkey", auth="fakeauthkey",
    )
    await add_subscription(db_session, make_subscriber(), "https://fcm.googleapis.com/fcm/send/good")

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert [r.success for r in outcome.results] == [False, True]
    assert outcome.results[0].status_code is None
    assert len(fake.requests) == 1
    # Decode failures are not proof the endpoint is gone
    assert len(await subscription_store.list_for_user(db_session, USER_ID)) == 2


async def test_oversized_payload_is_reported_per_subscription(db_session, test_settings):
    fake = FakePushService()
    service = make_service(test_settings, fake)
    await add_subscription(db_session, make_subscriber(), "https://fcm.googleapis.com/fcm/send/abc")

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "x" * 5000)

    assert outcome.results[0].success is False
    assert "single-record limit" in outcome.results[0].error
    assert fake.requests == []


async def test_no_subscriptions(db_session, test_settings):
    service = make_service(test_settings, FakePushService())

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert outcome.success is False
    assert outcome.results == []
    assert outcome.to_dict() == {"success": False, "results": [], "message": "No subscriptions found"}


async def test_missing_vapid_keys_abort_before_sending(db_session, test_settings):
    settings = test_settings.model_copy(update={"vapid_public_key": None, "vapid_private_key": None})
    fake = FakePushService()
    service = make_service(settings, fake)
    await add_subscription(db_session, make_subscriber(), "https://fcm.googleapis.com/fcm/send/abc")

    with pytest.raises(VapidConfigurationError):
        await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")
    assert fake.requests == []


async def test_parallel_fan_out_keeps_order(db_session, test_settings):
    endpoints = [f"https://fcm.googleapis.com/fcm/send/{i}" for i in range(5)]
    fake = FakePushService({endpoints[2]: 410})
    service = make_service(test_settings, fake, push_max_concurrency=3)
    for endpoint in endpoints:
        await add_subscription(db_session, make_subscriber(), endpoint)

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert [r.endpoint for r in outcome.results] == endpoints
    assert [r.success for r in outcome.results] == [True, True, False, True, True]
    assert len(await subscription_store.list_for_user(db_session, USER_ID)) == 4


async def test_topic_header_can_be_disabled(db_session, test_settings, subscriber, vapid_keys):
    fake = FakePushService()
    service = make_service(test_settings, fake, push_topic=None, push_urgency="normal")
    sub = await add_subscription(db_session, subscriber, "https://fcm.googleapis.com/fcm/send/abc")

    await service.send_to_subscription(sub, "{}", vapid_keys)

    assert "Topic" not in fake.requests[0].headers
    assert fake.requests[0].headers["Urgency"] == "normal"


async def test_result_serialization():
    from doorbell.services.push import PushResult

    assert PushResult(endpoint="https://e", success=True, status_code=201).to_dict() == {
        "endpoint": "https://e",
        "success": True,
        "statusCode": 201,
    }
    assert PushResult(endpoint="https://e", success=False, error="boom").to_dict() == {
        "endpoint": "https://e",
        "success": False,
        "error": "boom",
    }


async def test_malformed_endpoint_urls_do_not_abort_batch(db_session, test_settings):
    gone = "https://updates.push.services.mozilla.com/wpush/v2/gone"
    alive = "https://fcm.googleapis.com/fcm/send/alive"
    broken = ["https://[::1/x", "https://exa mple.com/x"]
    fake = FakePushService({gone: 410, alive: 200})
    service = make_service(test_settings, fake)
    await add_subscription(db_session, make_subscriber(), broken[0])
    await add_subscription(db_session, make_subscriber(), gone)
    await add_subscription(db_session, make_subscriber(), broken[1])
    await add_subscription(db_session, make_subscriber(), alive)

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert [r.endpoint for r in outcome.results] == [broken[0], gone, broken[1], alive]
    assert [r.success for r in outcome.results] == [False, False, False, True]
    assert "valid URL" in outcome.results[0].error
    assert outcome.results[2].error
    assert len(fake.requests) == 2

    remaining = await subscription_store.list_for_user(db_session, USER_ID)
    assert [s.endpoint for s in remaining] == [broken[0], broken[1], alive]


async def test_unexpected_encoding_error_is_reported_per_subscription(db_session, test_settings, monkeypatch):
    fake = FakePushService()
    service = make_service(test_settings, fake)
    await add_subscription(db_session, make_subscriber(), "https://fcm.googleapis.com/fcm/send/abc")

    def explode(*args, **kwargs):
        raise RuntimeError("backend unavailable")

    monkeypatch.setattr("doorbell.services.push.encrypt", explode)

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert outcome.results[0].success is False
    assert "backend unavailable" in outcome.results[0].error
    assert fake.requests == []


async def test_stray_exception_keeps_finished_results(db_session, test_settings, monkeypatch):
    gone = "https://updates.push.services.mozilla.com/wpush/v2/gone"
    alive = "https://fcm.googleapis.com/fcm/send/alive"
    crashing = "https://fcm.googleapis.com/fcm/send/crash"
    service = make_service(test_settings, FakePushService({gone: 410}), push_max_concurrency=3)
    for endpoint in (gone, crashing, alive):
        await add_subscription(db_session, make_subscriber(), endpoint)

    real_send = service.send_to_subscription

    async def send(subscription, *args, **kwargs):
        if subscription.endpoint == crashing:
            raise RuntimeError("unexpected failure")
        return await real_send(subscription, *args, **kwargs)

    monkeypatch.setattr(service, "send_to_subscription", send)

    outcome = await service.dispatch_to_user(db_session, USER_ID, "Doorbell", "Ring ring")

    assert [r.success for r in outcome.results] == [False, False, True]
    assert outcome.results[1].error == "unexpected failure"
    remaining = await subscription_store.list_for_user(db_session, USER_ID)
    assert [s.endpoint for s in remaining] == [crashing, alive]
