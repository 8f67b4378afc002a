"""Member entitlement snapshot ("X of Y redemptions left")."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from dealpass_api.api.dependencies.session import get_redemption_store, require_member_session
from dealpass_api.api.errors import redemption_http_error
from dealpass_api.models.user import User
from dealpass_api.services.redemptions.entitlements import EntitlementCalculator, EntitlementSnapshot
from dealpass_api.services.redemptions.errors import RedemptionError
from dealpass_api.services.redemptions.store import SqlAlchemyRedemptionStore


router = APIRouter(prefix="/entitlements", tags=["entitlements"])


class EntitlementResponse(BaseModel):
    tier: str
    billingPeriod: str
    allowed: bool
    unlimited: bool
    limit: int | None
    used: int | None
    remaining: int | None
    periodStart: datetime
    periodEnd: datetime
    nextRenewal: datetime

    @classmethod
    def from_snapshot(cls, snapshot: EntitlementSnapshot) -> "EntitlementResponse":
        unlimited = snapshot.is_unlimited
        return cls(
            tier=snapshot.tier.value,
            billingPeriod=snapshot.billing_period.value,
            allowed=snapshot.allowed,
            unlimited=unlimited,
            limit=None if unlimited else int(snapshot.limit),
            used=snapshot.used,
            remaining=None if unlimited else int(snapshot.remaining),
            periodStart=snapshot.window.period_start,
            periodEnd=snapshot.window.period_end,
            nextRenewal=snapshot.window.next_renewal,
        )


@router.get("/me", response_model=EntitlementResponse, summary="Current member entitlement")
async def get_my_entitlement(
    member: User = Depends(require_member_session),
    store: SqlAlchemyRedemptionStore = Depends(get_redemption_store),
) -> EntitlementResponse:
    try:
        snapshot = await EntitlementCalculator(store).check_monthly_limit(member.id)
    except RedemptionError as exc:
        raise redemption_http_error(exc, user_id=member.id, step="entitlement_check") from exc
    return EntitlementResponse.from_snapshot(snapshot)
