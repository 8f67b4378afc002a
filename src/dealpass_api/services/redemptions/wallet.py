"""Wallet service: claim, release and list saved deals."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Sequence
from uuid import UUID

from loguru import logger

from dealpass_api.models.wallet import RedemptionRecord, WalletItem, WalletItemStatus
from dealpass_api.observability.redemptions import RedemptionObservabilityStore, get_redemption_telemetry
from dealpass_api.services.redemptions.engine import (
    ensure_deal_capacity,
    ensure_deal_not_expired,
    ensure_tier_eligible,
)
from dealpass_api.services.redemptions.entitlements import EntitlementCalculator
from dealpass_api.services.redemptions.errors import (
    DealAlreadyClaimedError,
    DealNotFoundError,
    LimitExceededError,
    RedemptionError,
    WalletItemNotFoundError,
)
from dealpass_api.services.redemptions.renewal import ensure_utc
from dealpass_api.services.redemptions.store import DuplicateActiveClaimError, RedemptionStore


class WalletService:
    """Manage the ``active`` wallet items that occupy a user's capacity."""

    def __init__(
        self,
        store: RedemptionStore,
        *,
        entitlements: EntitlementCalculator | None = None,
        telemetry: RedemptionObservabilityStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._entitlements = entitlements or EntitlementCalculator(store)
        self._telemetry = telemetry or get_redemption_telemetry()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def claim_deal(self, user_id: UUID, deal_id: UUID) -> WalletItem:
        """Save a deal to the wallet, consuming one capacity slot."""

        now = ensure_utc(self._clock())
        try:
            async with self._store.redemption_scope(user_id, deal_id):
                deal = await self._store.get_deal(deal_id)
                if deal is None:
                    raise DealNotFoundError(deal_id)
                ensure_deal_not_expired(deal, now)

                snapshot = await self._entitlements.check_monthly_limit(user_id, now=now)
                ensure_tier_eligible(deal, snapshot)
                await ensure_deal_capacity(self._store, deal, user_id)
                if not snapshot.allowed:
                    raise LimitExceededError(limit=snapshot.limit, remaining=0)

                try:
                    item = await self._store.insert_wallet_item(user_id, deal_id, claimed_at=now)
                except DuplicateActiveClaimError as exc:
                    raise DealAlreadyClaimedError(user_id, deal_id) from exc
                await self._store.commit()
        except RedemptionError as exc:
            self._telemetry.record_claim(exc.code)
            raise

        self._telemetry.record_claim("claimed")
        logger.info(
            "Deal claimed",
            user_id=str(user_id),
            deal_id=str(deal_id),
            wallet_item_id=str(item.id),
        )
        return item

    async def release_deal(self, user_id: UUID, deal_id: UUID) -> None:
        now = ensure_utc(self._clock())
        transition = await self._store.transition_wallet_item(
            user_id,
            deal_id,
            from_status=WalletItemStatus.ACTIVE,
            to_status=WalletItemStatus.REMOVED,
            at=now,
        )
        if not transition.applied:
            await self._store.rollback()
            self._telemetry.record_claim("release_missed")
            raise WalletItemNotFoundError(user_id, deal_id)
        await self._store.commit()
        self._telemetry.record_claim("released")
        logger.info(
            "Deal released from wallet",
            user_id=str(user_id),
            deal_id=str(deal_id),
            wallet_item_id=str(transition.item_id),
        )

    async def list_wallet(
        self,
        user_id: UUID,
        *,
        statuses: Sequence[WalletItemStatus] | None = None,
    ) -> list[WalletItem]:
        return await self._store.list_wallet_items(user_id, statuses=statuses)

    async def list_redemption_history(self, user_id: UUID, *, limit: int = 50) -> list[RedemptionRecord]:
        return await self._store.list_redemptions(user_id, limit=max(1, limit))


__all__ = ["WalletService"]
