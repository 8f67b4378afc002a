from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Enum as SqlEnum, Index, Integer, String, func, text
from sqlalchemy.dialects.postgresql import UUID

from dealpass_api.db.base import Base
from dealpass_api.models.user import SubscriptionTier


class BillingPeriod(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionPlan(Base):
    """Redemption quota configured for a subscription tier."""

    __tablename__ = "subscription_plans"
    __table_args__ = (
        Index(
            "uq_subscription_plans_active_tier",
            "tier",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tier = Column(SqlEnum(SubscriptionTier, name="subscription_tier"), nullable=False)
    name = Column(String, nullable=False)
    redemptions_per_period = Column(Integer, nullable=False)
    billing_period = Column(
        SqlEnum(
            BillingPeriod,
            name="billing_period",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=BillingPeriod.MONTHLY,
    )
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
