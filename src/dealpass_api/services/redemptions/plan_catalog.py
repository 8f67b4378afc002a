"""Plan catalog: resolve subscription tiers to redemption quotas."""

from __future__ import annotations

import math
from dataclasses import dataclass

from loguru import logger

from dealpass_api.core.settings import settings
from dealpass_api.models.subscription_plan import BillingPeriod, SubscriptionPlan
from dealpass_api.models.user import SubscriptionTier
from dealpass_api.services.redemptions.errors import PlanNotFoundError
from dealpass_api.services.redemptions.renewal import monthly_allotment
from dealpass_api.services.redemptions.store import RedemptionStore


@dataclass(frozen=True, slots=True)
class PlanQuota:
    """Quota view of an active subscription plan."""

    tier: SubscriptionTier
    name: str
    redemptions_per_period: int
    billing_period: BillingPeriod
    monthly_limit: int | float

    @property
    def is_unlimited(self) -> bool:
        return math.isinf(self.monthly_limit)


class PlanCatalog:
    """Read-only lookup of the active plan per tier.

    Plans are read from storage on every call so quota edits take effect on
    the next entitlement check.
    """

    def __init__(self, store: RedemptionStore, *, unlimited_threshold: int | None = None) -> None:
        self._store = store
        self._unlimited_threshold = unlimited_threshold or settings.unlimited_redemptions_threshold

    async def get_plan_for_tier(self, tier: SubscriptionTier | str) -> PlanQuota:
        resolved_tier = SubscriptionTier(tier)
        plan = await self._store.get_active_plan(resolved_tier)
        if plan is None:
            logger.error(
                "Subscription plan missing for tier",
                tier=resolved_tier.value,
                fault="configuration",
            )
            raise PlanNotFoundError(resolved_tier.value)
        return self._to_quota(plan)

    async def list_active_plans(self) -> list[PlanQuota]:
        plans = await self._store.list_active_plans()
        logger.debug("Fetched subscription plans", count=len(plans))
        return [self._to_quota(plan) for plan in plans]

    def _to_quota(self, plan: SubscriptionPlan) -> PlanQuota:
        billing_period = BillingPeriod(plan.billing_period)
        return PlanQuota(
            tier=SubscriptionTier(plan.tier),
            name=plan.name,
            redemptions_per_period=int(plan.redemptions_per_period),
            billing_period=billing_period,
            monthly_limit=monthly_allotment(
                plan.redemptions_per_period,
                billing_period,
                unlimited_threshold=self._unlimited_threshold,
            ),
        )


__all__ = ["PlanCatalog", "PlanQuota"]
