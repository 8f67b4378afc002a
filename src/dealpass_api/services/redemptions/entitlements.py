"""Entitlement calculator: how many redemptions a user has left right now."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from loguru import logger

from dealpass_api.models.subscription_plan import BillingPeriod
from dealpass_api.models.user import SubscriptionTier, User
from dealpass_api.services.redemptions.errors import UserNotFoundError
from dealpass_api.services.redemptions.plan_catalog import PlanCatalog
from dealpass_api.services.redemptions.renewal import BillingWindow, compute_billing_window
from dealpass_api.services.redemptions.store import RedemptionStore


@dataclass(frozen=True, slots=True)
class EntitlementSnapshot:
    """Serializable entitlement state for "X of Y redemptions left" banners."""

    allowed: bool
    remaining: int | float
    limit: int | float
    used: int | None
    tier: SubscriptionTier
    billing_period: BillingPeriod
    window: BillingWindow

    @property
    def is_unlimited(self) -> bool:
        return math.isinf(self.limit)


def compute_remaining(limit: int | float, active_count: int) -> tuple[bool, int | float]:
    """Return ``(allowed, remaining)`` for a limit and the number of held items.

    Over-allocation (more active items than the limit allows) clamps to zero.
    """

    if math.isinf(limit):
        return True, math.inf
    remaining = max(0, int(limit) - int(active_count))
    return remaining > 0, remaining


class EntitlementCalculator:
    """Combine plan quota, bonus grants and held wallet items into a limit check.

    Capacity is consumed by *holding* active wallet items rather than by
    redemption events in the current window: a claimed but unredeemed deal
    keeps occupying a slot until it is redeemed or released.
    """

    def __init__(self, store: RedemptionStore, *, plan_catalog: PlanCatalog | None = None) -> None:
        self._store = store
        self._plans = plan_catalog or PlanCatalog(store)

    async def check_monthly_limit(self, user_id: UUID, *, now: datetime | None = None) -> EntitlementSnapshot:
        reference = now or datetime.now(timezone.utc)
        user = await self._store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        tier = SubscriptionTier(user.tier)
        plan = await self._plans.get_plan_for_tier(tier)
        window = compute_billing_window(self._renewal_anchor(user), plan.billing_period, reference)

        if plan.is_unlimited:
            return EntitlementSnapshot(
                allowed=True,
                remaining=math.inf,
                limit=math.inf,
                used=None,
                tier=tier,
                billing_period=plan.billing_period,
                window=window,
            )

        # Bonus grants raise the ceiling; they are not consumed in any order
        limit = int(plan.monthly_limit) + max(int(user.extra_redemptions or 0), 0)
        active_count = await self._store.count_active_wallet_items(user_id)
        allowed, remaining = compute_remaining(limit, active_count)

        if active_count > limit:
            logger.warning(
                "Active wallet items exceed redemption limit",
                user_id=str(user_id),
                tier=tier.value,
                limit=limit,
                active_count=active_count,
            )

        return EntitlementSnapshot(
            allowed=allowed,
            remaining=remaining,
            limit=limit,
            used=active_count,
            tier=tier,
            billing_period=plan.billing_period,
            window=window,
        )

    @staticmethod
    def _renewal_anchor(user: User) -> datetime:
        anchor = user.subscription_started_at or user.created_at
        if anchor is None:
            return datetime.now(timezone.utc)
        return anchor


__all__ = ["EntitlementCalculator", "EntitlementSnapshot", "compute_remaining"]
