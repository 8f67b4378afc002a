"""Subscription plan quota listing."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from dealpass_api.api.dependencies.session import get_redemption_store
from dealpass_api.services.redemptions.plan_catalog import PlanCatalog, PlanQuota
from dealpass_api.services.redemptions.store import SqlAlchemyRedemptionStore


router = APIRouter(prefix="/plans", tags=["plans"])


class PlanResponse(BaseModel):
    tier: str
    name: str
    billingPeriod: str
    redemptionsPerPeriod: int
    monthlyLimit: int | None
    unlimited: bool

    @classmethod
    def from_quota(cls, quota: PlanQuota) -> "PlanResponse":
        return cls(
            tier=quota.tier.value,
            name=quota.name,
            billingPeriod=quota.billing_period.value,
            redemptionsPerPeriod=quota.redemptions_per_period,
            monthlyLimit=None if quota.is_unlimited else int(quota.monthly_limit),
            unlimited=quota.is_unlimited,
        )


@router.get("", response_model=List[PlanResponse], summary="List active subscription plans")
async def list_plans(store: SqlAlchemyRedemptionStore = Depends(get_redemption_store)) -> List[PlanResponse]:
    quotas = await PlanCatalog(store).list_active_plans()
    return [PlanResponse.from_quota(quota) for quota in quotas]
