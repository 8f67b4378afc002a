from fastapi import APIRouter

from .endpoints import (
    entitlements,
    health,
    observability,
    plans,
    redemptions,
    wallet,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(plans.router)
router.include_router(entitlements.router)
router.include_router(wallet.router)
router.include_router(redemptions.router)
router.include_router(observability.router)
