"""Pytest fixtures: in-memory database, VAPID keys and subscriber key material."""
import os
from dataclasses import dataclass

# Must be set before doorbell modules are imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.pop("VAPID_PUBLIC_KEY", None)
os.environ.pop("VAPID_PRIVATE_KEY", None)
os.environ.pop("SERVICE_API_KEY", None)

import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from doorbell.db import Base
from doorbell.models import PushSubscription, VapidKey  # noqa: F401
from doorbell.settings import Settings
from doorbell.webpush import encode_base64url, generate_vapid_key_pair
from doorbell.webpush.ecdh import public_key_bytes


@dataclass
class Subscriber:
    """A browser's side of a push subscription."""

    private_key: ec.EllipticCurvePrivateKey
    auth_secret: bytes

    @property
    def public_key(self) -> bytes:
        return public_key_bytes(self.private_key.public_key())

    @property
    def p256dh(self) -> str:
        return encode_base64url(self.public_key)

    @property
    def auth(self) -> str:
        return encode_base64url(self.auth_secret)


def make_subscriber() -> Subscriber:
    return Subscriber(
        private_key=ec.generate_private_key(ec.SECP256R1()),
        auth_secret=os.urandom(16),
    )


@pytest.fixture
def subscriber() -> Subscriber:
    return make_subscriber()


@pytest.fixture
def vapid_keys():
    return generate_vapid_key_pair()


@pytest.fixture
def test_settings(vapid_keys) -> Settings:
    """Settings with VAPID keys supplied through the environment fields."""
    return Settings(_env_file=None).model_copy(
        update={
            "vapid_public_key": vapid_keys.public_key,
            "vapid_private_key": vapid_keys.private_key,
            "vapid_contact_email": "alerts@doorbell.test",
        }
    )


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session
