"""
Push subscription store.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from doorbell.models.push_subscription import PushSubscription

logger = logging.getLogger(__name__)


async def list_for_user(db: AsyncSession, user_id: str) -> list[PushSubscription]:
    """All subscriptions of a user, oldest first."""
    result = await db.execute(
        select(PushSubscription)
        .where(PushSubscription.user_id == user_id)
        .order_by(PushSubscription.id)
    )
    return list(result.scalars().all())


async def upsert(
    db: AsyncSession,
    user_id: str,
    endpoint: str,
    p256dh: str,
    auth: str,
    user_agent: str | None = None,
) -> PushSubscription:
    """Create a subscription or refresh the keys of an existing one."""
    result = await db.execute(
        select(PushSubscription).where(
            PushSubscription.user_id == user_id,
            PushSubscription.endpoint == endpoint,
        )
    )
    existing = result.scalar_one_or_none()

    if existing:
        # Browsers may rotate keys for the same endpoint
        existing.p256dh = p256dh
        existing.auth = auth
        existing.user_agent = user_agent
        logger.info("Updated existing push subscription %s for user %s", existing.id, user_id)
        subscription = existing
    else:
        subscription = PushSubscription(
            user_id=user_id,
            endpoint=endpoint,
            p256dh=p256dh,
            auth=auth,
            user_agent=user_agent,
        )
        db.add(subscription)
        logger.info("Created new push subscription for user %s", user_id)

    await db.commit()
    return subscription


async def delete_by_id(db: AsyncSession, subscription_id: int) -> bool:
    """Delete one subscription. Missing rows are not an error.

    Returns whether a row was actually removed.
    """
    result = await db.execute(
        delete(PushSubscription).where(PushSubscription.id == subscription_id)
    )
    await db.commit()
    return result.rowcount > 0


async def delete_by_endpoint(db: AsyncSession, user_id: str, endpoint: str) -> bool:
    result = await db.execute(
        delete(PushSubscription).where(
            PushSubscription.user_id == user_id,
            PushSubscription.endpoint == endpoint,
        )
    )
    await db.commit()
    return result.rowcount > 0
