"""
Push subscription model for web push notifications.
"""

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from doorbell.db import Base
from doorbell.models.base import TimestampMixin


class PushSubscription(Base, TimestampMixin):
    """One browser/device registration with a push service."""

    __tablename__ = "push_subscriptions"
    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", name="uq_push_sub_user_endpoint"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    # Owner; users live in the auth provider, so no foreign key here
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Push subscription data
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    p256dh: Mapped[str] = mapped_column(String(255), nullable=False)  # Client public key (base64url)
    auth: Mapped[str] = mapped_column(String(255), nullable=False)  # Auth secret (base64url)

    # User agent for device identification
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<PushSubscription id={self.id} user={self.user_id}>"
