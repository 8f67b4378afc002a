"""Typed failures raised by the entitlement and redemption services."""

from __future__ import annotations

import math
from datetime import datetime
from uuid import UUID


class RedemptionError(RuntimeError):
    """Base exception for entitlement and redemption failures."""

    code = "redemption_error"
    user_facing = True


class PlanNotFoundError(RedemptionError):
    """No active subscription plan is configured for a tier."""

    code = "plan_not_found"
    user_facing = False

    def __init__(self, tier: str) -> None:
        super().__init__(f"No active subscription plan configured for tier {tier}")
        self.tier = tier


class UserNotFoundError(RedemptionError):
    code = "user_not_found"

    def __init__(self, user_id: UUID) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class DealNotFoundError(RedemptionError):
    code = "deal_not_found"

    def __init__(self, deal_id: UUID) -> None:
        super().__init__(f"Deal {deal_id} not found")
        self.deal_id = deal_id


class DealExpiredError(RedemptionError):
    code = "deal_expired"

    def __init__(self, deal_id: UUID, expires_at: datetime) -> None:
        super().__init__(f"Deal {deal_id} expired at {expires_at.isoformat()}")
        self.deal_id = deal_id
        self.expires_at = expires_at


class AlreadyRedeemedError(RedemptionError):
    """The user's wallet item for this deal has already been redeemed."""

    code = "already_redeemed"

    def __init__(self, user_id: UUID, deal_id: UUID) -> None:
        super().__init__(f"Deal {deal_id} has already been redeemed by user {user_id}")
        self.user_id = user_id
        self.deal_id = deal_id


class LimitExceededError(RedemptionError):
    code = "limit_exceeded"

    def __init__(self, *, limit: int | float, remaining: int | float = 0) -> None:
        label = "unlimited" if math.isinf(limit) else str(int(limit))
        super().__init__(f"Monthly redemption limit reached ({label})")
        self.limit = limit
        self.remaining = remaining


class DealSoldOutError(RedemptionError):
    code = "deal_sold_out"

    def __init__(self, deal_id: UUID, max_redemptions_total: int | None) -> None:
        super().__init__(f"Deal {deal_id} has reached its redemption limit and is sold out")
        self.deal_id = deal_id
        self.max_redemptions_total = max_redemptions_total


class UserRedemptionCapError(RedemptionError):
    code = "user_redemption_cap"

    def __init__(self, deal_id: UUID, max_user_redemptions: int) -> None:
        super().__init__(
            f"Deal {deal_id} allows {max_user_redemptions} redemption(s) per user"
        )
        self.deal_id = deal_id
        self.max_user_redemptions = max_user_redemptions


class TierRequiredError(RedemptionError):
    code = "tier_required"

    def __init__(self, deal_id: UUID, required_tier: str, current_tier: str) -> None:
        super().__init__(f"Deal {deal_id} requires {required_tier} membership (current: {current_tier})")
        self.deal_id = deal_id
        self.required_tier = required_tier
        self.current_tier = current_tier


class DealAlreadyClaimedError(RedemptionError):
    code = "deal_already_claimed"

    def __init__(self, user_id: UUID, deal_id: UUID) -> None:
        super().__init__(f"Deal {deal_id} is already in the wallet of user {user_id}")
        self.user_id = user_id
        self.deal_id = deal_id


class RedemptionConflictError(RedemptionError):
    """A wallet item kept changing underneath the conditional update."""

    code = "redemption_conflict"

    def __init__(self, user_id: UUID, deal_id: UUID) -> None:
        super().__init__(f"Wallet item for deal {deal_id} and user {user_id} changed during redemption")
        self.user_id = user_id
        self.deal_id = deal_id


class WalletItemNotFoundError(RedemptionError):
    code = "wallet_item_not_found"

    def __init__(self, user_id: UUID, deal_id: UUID) -> None:
        super().__init__(f"No active wallet item for deal {deal_id} and user {user_id}")
        self.user_id = user_id
        self.deal_id = deal_id


__all__ = [
    "AlreadyRedeemedError",
    "DealAlreadyClaimedError",
    "DealExpiredError",
    "DealNotFoundError",
    "DealSoldOutError",
    "LimitExceededError",
    "PlanNotFoundError",
    "RedemptionConflictError",
    "RedemptionError",
    "TierRequiredError",
    "UserNotFoundError",
    "UserRedemptionCapError",
    "WalletItemNotFoundError",
]
