"""Entitlement and redemption services."""

from .engine import RedemptionEngine, WalletHolding, WalletLookup
from .entitlements import EntitlementCalculator, EntitlementSnapshot, compute_remaining
from .errors import (
    AlreadyRedeemedError,
    DealAlreadyClaimedError,
    DealExpiredError,
    DealNotFoundError,
    DealSoldOutError,
    LimitExceededError,
    PlanNotFoundError,
    RedemptionConflictError,
    RedemptionError,
    TierRequiredError,
    UserNotFoundError,
    UserRedemptionCapError,
    WalletItemNotFoundError,
)
from .plan_catalog import PlanCatalog, PlanQuota
from .reconciliation import ReconciliationSummary, find_orphaned_redemptions, reconcile_redemptions
from .renewal import BillingWindow, compute_billing_window, monthly_allotment
from .store import DuplicateActiveClaimError, RedemptionStore, SqlAlchemyRedemptionStore, TransitionResult
from .wallet import WalletService

__all__ = [
    "AlreadyRedeemedError",
    "BillingWindow",
    "DealAlreadyClaimedError",
    "DealExpiredError",
    "DealNotFoundError",
    "DealSoldOutError",
    "DuplicateActiveClaimError",
    "EntitlementCalculator",
    "EntitlementSnapshot",
    "LimitExceededError",
    "PlanCatalog",
    "PlanNotFoundError",
    "PlanQuota",
    "RedemptionConflictError",
    "RedemptionEngine",
    "RedemptionError",
    "RedemptionStore",
    "ReconciliationSummary",
    "SqlAlchemyRedemptionStore",
    "TierRequiredError",
    "TransitionResult",
    "UserNotFoundError",
    "UserRedemptionCapError",
    "WalletHolding",
    "WalletItemNotFoundError",
    "WalletLookup",
    "WalletService",
    "compute_billing_window",
    "compute_remaining",
    "find_orphaned_redemptions",
    "monthly_allotment",
    "reconcile_redemptions",
]
