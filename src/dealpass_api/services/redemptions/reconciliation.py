"""Detect and repair redeemed wallet items that never got a redemption record."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from loguru import logger

from dealpass_api.models.wallet import WalletItem
from dealpass_api.core.settings import settings
from dealpass_api.observability.redemptions import RedemptionObservabilityStore, get_redemption_telemetry
from dealpass_api.services.redemptions.renewal import ensure_utc
from dealpass_api.services.redemptions.store import RedemptionStore


@dataclass
class ReconciliationSummary:
    orphaned: int = 0
    repaired: int = 0
    wallet_item_ids: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, object]:
        return {
            "orphaned": self.orphaned,
            "repaired": self.repaired,
            "wallet_item_ids": list(self.wallet_item_ids),
        }


async def find_orphaned_redemptions(
    store: RedemptionStore,
    *,
    limit: int,
    redeemed_before: datetime | None = None,
) -> list[WalletItem]:
    return await store.list_orphaned_redeemed_items(limit=limit, redeemed_before=redeemed_before)


async def reconcile_redemptions(
    store: RedemptionStore,
    *,
    limit: int,
    repair: bool = False,
    telemetry: RedemptionObservabilityStore | None = None,
    grace_seconds: int | None = None,
    now: datetime | None = None,
) -> ReconciliationSummary:
    """Report orphaned redeemed items and optionally append their missing records.

    Repaired records reuse the item's ``redeemed_at`` so history ordering and
    per-deal counts match what the original redemption would have written.
    Items redeemed within the last ``grace_seconds`` are skipped because the
    redemption that flipped them may still be inserting its record.
    """

    telemetry = telemetry or get_redemption_telemetry()
    if grace_seconds is None:
        grace_seconds = settings.redemption_reconciliation_grace_seconds
    cutoff = ensure_utc(now or datetime.now(timezone.utc)) - timedelta(seconds=grace_seconds)
    orphans = await find_orphaned_redemptions(store, limit=limit, redeemed_before=cutoff)
    summary = ReconciliationSummary(
        orphaned=len(orphans),
        wallet_item_ids=[str(item.id) for item in orphans],
    )

    for item in orphans:
        logger.warning(
            "Redeemed wallet item has no redemption record",
            wallet_item_id=str(item.id),
            user_id=str(item.user_id),
            deal_id=str(item.deal_id),
            repair=repair,
        )

    if repair and orphans:
        for item in orphans:
            await store.insert_redemption(
                item.user_id,
                item.deal_id,
                redeemed_at=item.redeemed_at or datetime.now(timezone.utc),
                wallet_item_id=item.id,
            )
            summary.repaired += 1
        await store.commit()

    telemetry.record_reconciliation(orphaned=summary.orphaned, repaired=summary.repaired)
    return summary


__all__ = ["ReconciliationSummary", "find_orphaned_redemptions", "reconcile_redemptions"]
