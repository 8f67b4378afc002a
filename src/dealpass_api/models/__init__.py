"""SQLAlchemy models package."""

from .user import SubscriptionTier, User  # noqa: F401
from .subscription_plan import BillingPeriod, SubscriptionPlan  # noqa: F401
from .deal import Deal  # noqa: F401
from .wallet import (  # noqa: F401
    RedemptionRecord,
    RedemptionStyle,
    WalletItem,
    WalletItemStatus,
)
