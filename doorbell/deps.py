"""
FastAPI dependencies for database, service authentication and push services.
"""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from doorbell.db import get_db
from doorbell.services.push import PushNotificationService, push_service
from doorbell.services.vapid_keys import VapidKeyProvider, vapid_key_provider
from doorbell.settings import settings

# Type alias for database dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


async def require_service_key(
    authorization: str | None = Header(default=None),
) -> None:
    """Check ``Authorization: Bearer <service_api_key>`` when a key is configured."""
    expected = settings.service_api_key
    if not expected:
        return

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing service key",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_push_service() -> PushNotificationService:
    return push_service


def get_vapid_key_provider() -> VapidKeyProvider:
    return vapid_key_provider


ServiceAuth = Depends(require_service_key)
PushService = Annotated[PushNotificationService, Depends(get_push_service)]
VapidKeys = Annotated[VapidKeyProvider, Depends(get_vapid_key_provider)]
