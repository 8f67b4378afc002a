from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum as SqlEnum, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from dealpass_api.db.base import Base
from dealpass_api.models.user import SubscriptionTier


class Deal(Base):
    """Read-mostly view of a partner deal, limited to redemption-relevant fields."""

    __tablename__ = "deals"
    __table_args__ = (
        CheckConstraint(
            "max_redemptions_total IS NULL OR max_redemptions_total > 0",
            name="ck_deals_max_redemptions_total_positive",
        ),
        CheckConstraint(
            "max_user_redemptions IS NULL OR max_user_redemptions > 0",
            name="ck_deals_max_user_redemptions_positive",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    title = Column(String, nullable=False)
    vendor = Column(String, nullable=True)
    required_tier = Column(
        SqlEnum(SubscriptionTier, name="subscription_tier"),
        nullable=False,
        default=SubscriptionTier.FREE,
        server_default=SubscriptionTier.FREE.value,
    )
    max_redemptions_total = Column(Integer, nullable=True)
    max_user_redemptions = Column(Integer, nullable=True)
    is_sold_out = Column(Boolean, nullable=False, default=False, server_default="false")
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
