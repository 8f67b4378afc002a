from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from dealpass_api.db.base import Base


class SubscriptionTier(str, Enum):
    NONE = "NONE"
    FREE = "FREE"
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"
    VIP = "VIP"

    @property
    def rank(self) -> int:
        return _TIER_RANKS[self]


_TIER_RANKS = {
    SubscriptionTier.NONE: 0,
    SubscriptionTier.FREE: 1,
    SubscriptionTier.BASIC: 2,
    SubscriptionTier.PREMIUM: 3,
    SubscriptionTier.VIP: 4,
}


class User(Base):
    """Marketplace member as resolved by the identity provider."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    display_name = Column(String, nullable=True)
    tier = Column(
        SqlEnum(SubscriptionTier, name="subscription_tier"),
        nullable=False,
        default=SubscriptionTier.NONE,
        server_default=SubscriptionTier.NONE.value,
    )
    # Admin bonus grants: never expire, never reset
    extra_redemptions = Column(Integer, nullable=False, default=0, server_default="0")
    subscription_started_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
