"""
VAPID key pair, provisioned once per deployment.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from doorbell.db import Base
from doorbell.models.base import TimestampMixin


class VapidKey(Base, TimestampMixin):
    """Application server key pair. Only the first row is ever used."""

    __tablename__ = "vapid_keys"

    id: Mapped[int] = mapped_column(primary_key=True)
    public_key: Mapped[str] = mapped_column(String(128), nullable=False)  # 65-byte point, base64url
    private_key: Mapped[str] = mapped_column(String(64), nullable=False)  # 32-byte scalar, base64url

    def __repr__(self) -> str:
        return f"<VapidKey id={self.id}>"
