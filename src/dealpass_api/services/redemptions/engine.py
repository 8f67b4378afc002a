"""Redemption engine: at-most-once transition of claimed deals to redeemed."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable
from uuid import UUID

from loguru import logger

from dealpass_api.models.deal import Deal
from dealpass_api.models.user import SubscriptionTier
from dealpass_api.models.wallet import RedemptionRecord, RedemptionStyle, WalletItem, WalletItemStatus
from dealpass_api.observability.redemptions import RedemptionObservabilityStore, get_redemption_telemetry
from dealpass_api.observability.tracing import get_tracer
from dealpass_api.services.redemptions.entitlements import EntitlementCalculator, EntitlementSnapshot
from dealpass_api.services.redemptions.errors import (
    AlreadyRedeemedError,
    DealExpiredError,
    DealNotFoundError,
    DealSoldOutError,
    LimitExceededError,
    RedemptionConflictError,
    RedemptionError,
    TierRequiredError,
    UserRedemptionCapError,
)
from dealpass_api.services.redemptions.renewal import ensure_utc
from dealpass_api.services.redemptions.store import RedemptionStore


Clock = Callable[[], datetime]

# A miss followed by an ACTIVE read means a claim landed between the two
# statements; one more conditional update settles it.
_OWNED_PATH_ATTEMPTS = 2


class WalletHolding(str, Enum):
    """What the user holds for a deal, as seen by the disambiguation read."""

    NOT_FOUND = "not_found"
    ACTIVE = "active"
    REDEEMED = "redeemed"


@dataclass(frozen=True, slots=True)
class WalletLookup:
    holding: WalletHolding
    item: WalletItem | None = None

    @classmethod
    def from_item(cls, item: WalletItem | None) -> "WalletLookup":
        if item is None:
            return cls(WalletHolding.NOT_FOUND)
        status = WalletItemStatus(item.status)
        if status is WalletItemStatus.ACTIVE:
            return cls(WalletHolding.ACTIVE, item)
        if status is WalletItemStatus.REDEEMED:
            return cls(WalletHolding.REDEEMED, item)
        return cls(WalletHolding.NOT_FOUND)


def ensure_deal_not_expired(deal: Deal, now: datetime) -> None:
    if deal.expires_at is None:
        return
    expires_at = ensure_utc(deal.expires_at)
    if expires_at <= now:
        raise DealExpiredError(deal.id, expires_at)


def ensure_tier_eligible(deal: Deal, snapshot: EntitlementSnapshot) -> None:
    required = SubscriptionTier(deal.required_tier or SubscriptionTier.FREE)
    if snapshot.tier.rank < required.rank:
        raise TierRequiredError(deal.id, required.value, snapshot.tier.value)


async def count_redeemed_slots(store: RedemptionStore, deal_id: UUID) -> int:
    """Redemptions that permanently consume a slot of the deal's global cap.

    Owned redemptions are counted by their wallet item, which turns ``redeemed``
    in the same statement that takes it out of ``active``.
    """

    direct = await store.count_redemptions(deal_id, unowned_only=True)
    owned = await store.count_deal_wallet_items(deal_id, statuses=[WalletItemStatus.REDEEMED])
    return direct + owned


async def ensure_deal_capacity(store: RedemptionStore, deal: Deal, user_id: UUID) -> int | None:
    """Check the deal's global and per-user caps.

    Held claims count against the global cap alongside redemptions. Returns the
    redeemed slot count when a global cap applies, so callers can flag the deal
    as sold out once they fill the last slot.
    """

    if deal.is_sold_out:
        raise DealSoldOutError(deal.id, deal.max_redemptions_total)

    total: int | None = None
    if deal.max_redemptions_total is not None:
        total = await count_redeemed_slots(store, deal.id)
        held = await store.count_deal_wallet_items(deal.id, statuses=[WalletItemStatus.ACTIVE])
        if total + held >= deal.max_redemptions_total:
            raise DealSoldOutError(deal.id, deal.max_redemptions_total)

    if deal.max_user_redemptions is not None:
        user_total = await store.count_redemptions(deal.id, user_id=user_id)
        if user_total >= deal.max_user_redemptions:
            raise UserRedemptionCapError(deal.id, deal.max_user_redemptions)

    return total


class RedemptionEngine:
    """Redeem deals with strict at-most-once semantics.

    Owned deals (an ``active`` wallet item exists) are redeemed through a single
    conditional update on the wallet item; whichever caller flips the row wins
    and every other caller observes zero affected rows. Unowned deals are
    redeemed directly inside the store's serialized scope after the entitlement
    and deal-cap checks pass.

    Expiry is checked before anything else so an expired deal is never
    reported as sold out.
    """

    def __init__(
        self,
        store: RedemptionStore,
        *,
        entitlements: EntitlementCalculator | None = None,
        telemetry: RedemptionObservabilityStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._entitlements = entitlements or EntitlementCalculator(store)
        self._telemetry = telemetry or get_redemption_telemetry()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def redeem_deal(
        self,
        user_id: UUID,
        deal_id: UUID,
        *,
        redemption_style: RedemptionStyle | str | None = None,
    ) -> RedemptionRecord:
        style = RedemptionStyle(redemption_style).value if redemption_style else None
        with get_tracer().start_as_current_span("redemptions.redeem_deal") as span:
            span.set_attribute("dealpass.user_id", str(user_id))
            span.set_attribute("dealpass.deal_id", str(deal_id))
            record = await self._redeem(user_id, deal_id, style)
            span.set_attribute("dealpass.owned", record.wallet_item_id is not None)
            return record

    async def _redeem(self, user_id: UUID, deal_id: UUID, style: str | None) -> RedemptionRecord:
        step = "load_deal"
        try:
            now = ensure_utc(self._clock())
            deal = await self._store.get_deal(deal_id)
            if deal is None:
                raise DealNotFoundError(deal_id)

            step = "expiry_check"
            ensure_deal_not_expired(deal, now)

            for _ in range(_OWNED_PATH_ATTEMPTS):
                step = "conditional_update"
                transition = await self._store.transition_wallet_item(
                    user_id,
                    deal_id,
                    from_status=WalletItemStatus.ACTIVE,
                    to_status=WalletItemStatus.REDEEMED,
                    at=now,
                )
                if transition.applied:
                    step = "record_insert"
                    return await self._record_owned(user_id, deal, transition.item_id, now, style)

                step = "disambiguate"
                lookup = WalletLookup.from_item(await self._store.find_wallet_item(user_id, deal_id))
                if lookup.holding is WalletHolding.REDEEMED:
                    raise AlreadyRedeemedError(user_id, deal_id)
                if lookup.holding is WalletHolding.NOT_FOUND:
                    step = "unowned_redemption"
                    return await self._redeem_unowned(user_id, deal_id, now, style)
                logger.info(
                    "Wallet item became active during redemption",
                    user_id=str(user_id),
                    deal_id=str(deal_id),
                )

            raise RedemptionConflictError(user_id, deal_id)
        except RedemptionError as exc:
            self._telemetry.record_rejection(exc.code)
            logger.info(
                "Redemption rejected",
                user_id=str(user_id),
                deal_id=str(deal_id),
                code=exc.code,
                step=step,
            )
            raise
        except Exception as exc:
            logger.exception(
                "Redemption failed",
                user_id=str(user_id),
                deal_id=str(deal_id),
                step=step,
                error=str(exc),
            )
            raise

    async def _record_owned(
        self,
        user_id: UUID,
        deal: Deal,
        wallet_item_id: UUID | None,
        now: datetime,
        style: str | None,
    ) -> RedemptionRecord:
        deal_id = deal.id
        # The flip is durable before the record insert; a failure in between
        # leaves a redeemed item without a record for reconciliation to pick up.
        await self._store.commit()
        try:
            record = await self._store.insert_redemption(
                user_id,
                deal_id,
                redeemed_at=now,
                wallet_item_id=wallet_item_id,
                redemption_style=style,
            )
            await self._store.commit()
        except Exception as exc:
            self._telemetry.record_inconsistency()
            logger.error(
                "Wallet item redeemed without redemption record",
                user_id=str(user_id),
                deal_id=str(deal_id),
                wallet_item_id=str(wallet_item_id) if wallet_item_id else None,
                step="record_insert",
                error=str(exc),
            )
            raise

        if deal.max_redemptions_total is not None:
            if await count_redeemed_slots(self._store, deal_id) >= deal.max_redemptions_total:
                await self._store.mark_deal_sold_out(deal_id)
                await self._store.commit()
                logger.info(
                    "Deal sold out",
                    deal_id=str(deal_id),
                    max_redemptions_total=deal.max_redemptions_total,
                )

        self._telemetry.record_redemption("owned")
        logger.info(
            "Redeemed owned deal",
            user_id=str(user_id),
            deal_id=str(deal_id),
            wallet_item_id=str(wallet_item_id) if wallet_item_id else None,
            redemption_id=str(record.id),
        )
        return record

    async def _redeem_unowned(
        self,
        user_id: UUID,
        deal_id: UUID,
        now: datetime,
        style: str | None,
    ) -> RedemptionRecord:
        async with self._store.redemption_scope(user_id, deal_id):
            deal = await self._store.get_deal(deal_id)
            if deal is None:
                raise DealNotFoundError(deal_id)

            snapshot = await self._entitlements.check_monthly_limit(user_id, now=now)
            ensure_tier_eligible(deal, snapshot)
            if not snapshot.allowed:
                raise LimitExceededError(limit=snapshot.limit, remaining=0)

            total = await ensure_deal_capacity(self._store, deal, user_id)
            record = await self._store.insert_redemption(
                user_id,
                deal_id,
                redeemed_at=now,
                redemption_style=style,
            )
            if total is not None and total + 1 >= deal.max_redemptions_total:
                await self._store.mark_deal_sold_out(deal_id)
                logger.info("Deal sold out", deal_id=str(deal_id), max_redemptions_total=deal.max_redemptions_total)
            await self._store.commit()

        self._telemetry.record_redemption("unowned")
        logger.info(
            "Redeemed unowned deal",
            user_id=str(user_id),
            deal_id=str(deal_id),
            redemption_id=str(record.id),
            remaining=snapshot.remaining,
        )
        return record


__all__ = [
    "RedemptionEngine",
    "WalletHolding",
    "WalletLookup",
    "count_redeemed_slots",
    "ensure_deal_capacity",
    "ensure_deal_not_expired",
    "ensure_tier_eligible",
]
