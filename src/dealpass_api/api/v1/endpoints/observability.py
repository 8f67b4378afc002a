"""Operator endpoints for redemption telemetry and consistency sweeps."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from dealpass_api.api.dependencies.security import require_operator_api_key
from dealpass_api.api.dependencies.session import get_redemption_store
from dealpass_api.core.settings import settings
from dealpass_api.observability.redemptions import get_redemption_telemetry
from dealpass_api.services.redemptions.reconciliation import reconcile_redemptions
from dealpass_api.services.redemptions.store import SqlAlchemyRedemptionStore


router = APIRouter(
    prefix="/observability",
    tags=["Observability"],
    dependencies=[Depends(require_operator_api_key)],
)


@router.get("/redemptions", summary="Redemption outcome counters")
async def get_redemption_snapshot() -> dict[str, object]:
    return get_redemption_telemetry().snapshot().as_dict()


@router.post("/redemptions/reconcile", summary="Run a redemption consistency sweep")
async def run_redemption_reconciliation(
    repair: bool = Query(False, description="Append missing redemption records"),
    limit: int = Query(settings.redemption_reconciliation_limit, ge=1, le=1000),
    store: SqlAlchemyRedemptionStore = Depends(get_redemption_store),
) -> dict[str, object]:
    summary = await reconcile_redemptions(store, limit=limit, repair=repair)
    return summary.as_dict()
