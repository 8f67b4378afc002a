"""Background workers supporting async processing."""

from .redemption_reconciliation import RedemptionReconciliationWorker

__all__ = ["RedemptionReconciliationWorker"]
