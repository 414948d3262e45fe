"""
Push notifications router: VAPID key, subscriptions and delivery.
"""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse

from doorbell.deps import DBSession, PushService, ServiceAuth, VapidKeys
from doorbell.schemas import SendRequest, SubscribeRequest, UnsubscribeRequest
from doorbell.services import subscriptions as subscription_store
from doorbell.webpush import VapidConfigurationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/push", tags=["push"], dependencies=[ServiceAuth])


@router.get("/vapid-public-key")
async def get_vapid_public_key(db: DBSession, provider: VapidKeys):
    """Get the VAPID public key for push subscription.

    Generates and stores a key pair the first time it is asked for.
    """
    try:
        keys = await provider.get_or_create(db)
    except VapidConfigurationError as e:
        logger.error("VAPID keys unusable: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Push notifications not configured",
        )
    return JSONResponse({"publicKey": keys.public_key})


@router.post("/subscribe")
async def subscribe(request: Request, db: DBSession, payload: SubscribeRequest):
    """Subscribe a browser to push notifications."""
    logger.info("Push subscription request from user %s", payload.user_id)
    await subscription_store.upsert(
        db,
        user_id=payload.user_id,
        endpoint=payload.endpoint,
        p256dh=payload.keys.p256dh,
        auth=payload.keys.auth,
        user_agent=request.headers.get("User-Agent"),
    )
    return JSONResponse({"status": "subscribed"})


@router.post("/unsubscribe")
async def unsubscribe(db: DBSession, payload: UnsubscribeRequest):
    """Unsubscribe from push notifications."""
    await subscription_store.delete_by_endpoint(db, payload.user_id, payload.endpoint)
    return JSONResponse({"status": "unsubscribed"})


@router.post("/send")
async def send_notification(db: DBSession, service: PushService, payload: SendRequest):
    """Send a notification to every device of a user."""
    logger.info("Sending push notification to user %s", payload.user_id)
    try:
        outcome = await service.dispatch_to_user(
            db,
            user_id=payload.user_id,
            title=payload.title,
            body=payload.body,
            data=payload.data,
        )
    except VapidConfigurationError as e:
        logger.error("Push dispatch aborted: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )
    return JSONResponse(outcome.to_dict())
