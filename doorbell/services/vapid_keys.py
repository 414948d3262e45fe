"""
Process-wide VAPID key access.

Keys come from the environment when configured, otherwise from the
``vapid_keys`` table. They are read once and cached for the life of the
process; a deployment never rotates them at runtime.
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from doorbell.models.vapid_key import VapidKey
from doorbell.settings import Settings, settings as default_settings
from doorbell.webpush import VapidConfigurationError, VapidKeyPair, generate_vapid_key_pair

logger = logging.getLogger(__name__)


class VapidKeyProvider:
    """Loads, validates and caches the application server key pair."""

    def __init__(self, settings: Settings = default_settings):
        self.settings = settings
        self._keys: VapidKeyPair | None = None
        self._lock = asyncio.Lock()

    def clear(self) -> None:
        self._keys = None

    async def _read_stored(self, db: AsyncSession) -> VapidKeyPair | None:
        result = await db.execute(select(VapidKey).order_by(VapidKey.id).limit(1))
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return VapidKeyPair(public_key=row.public_key, private_key=row.private_key)

    async def load(self, db: AsyncSession) -> VapidKeyPair:
        """Return the configured key pair or raise ``VapidConfigurationError``."""
        if self._keys is not None:
            return self._keys

        async with self._lock:
            if self._keys is not None:
                return self._keys

            if self.settings.push_env_keys_configured:
                keys = VapidKeyPair(
                    public_key=self.settings.vapid_public_key,
                    private_key=self.settings.vapid_private_key,
                )
                source = "environment"
            else:
                keys = await self._read_stored(db)
                source = "database"
            if keys is None:
                raise VapidConfigurationError("VAPID keys not configured")

            keys.validate()
            logger.info("Loaded VAPID keys from %s", source)
            self._keys = keys
            return keys

    async def get_or_create(self, db: AsyncSession) -> VapidKeyPair:
        """Like ``load`` but provisions and stores a key pair on first use."""
        try:
            return await self.load(db)
        except VapidConfigurationError:
            if self.settings.push_env_keys_configured or await self._read_stored(db) is not None:
                # Keys exist but are broken; generating new ones would orphan every subscription
                raise

        async with self._lock:
            keys = await self._read_stored(db)
            if keys is None:
                logger.info("Generating new VAPID keys")
                keys = generate_vapid_key_pair()
                db.add(VapidKey(public_key=keys.public_key, private_key=keys.private_key))
                await db.commit()
            self._keys = keys.validate()
            return self._keys


# Singleton instance
vapid_key_provider = VapidKeyProvider()
