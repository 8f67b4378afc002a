"""Storage contract for wallet items and redemption records.

The engine never locks in-process. Everything it needs for at-most-once
redemption is expressed here: a single-statement conditional transition, an
append-only insert, count queries, and a serialized scope for the
check-then-insert sequence of direct redemptions.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Protocol, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dealpass_api.models.deal import Deal
from dealpass_api.models.subscription_plan import SubscriptionPlan
from dealpass_api.models.user import SubscriptionTier, User
from dealpass_api.models.wallet import RedemptionRecord, WalletItem, WalletItemStatus


class DuplicateActiveClaimError(Exception):
    """Raised when inserting a second active wallet item for the same user and deal."""


@dataclass(frozen=True, slots=True)
class TransitionResult:
    """Outcome of a conditional wallet item update."""

    rows_affected: int
    item_id: UUID | None = None

    @property
    def applied(self) -> bool:
        return self.rows_affected == 1


class RedemptionStore(Protocol):
    """Persistence operations required by the entitlement and redemption services."""

    async def get_user(self, user_id: UUID) -> User | None: ...

    async def get_deal(self, deal_id: UUID) -> Deal | None: ...

    async def get_active_plan(self, tier: SubscriptionTier) -> SubscriptionPlan | None: ...

    async def list_active_plans(self) -> list[SubscriptionPlan]: ...

    async def count_active_wallet_items(self, user_id: UUID) -> int: ...

    async def find_wallet_item(self, user_id: UUID, deal_id: UUID) -> WalletItem | None: ...

    async def transition_wallet_item(
        self,
        user_id: UUID,
        deal_id: UUID,
        *,
        from_status: WalletItemStatus,
        to_status: WalletItemStatus,
        at: datetime,
    ) -> TransitionResult: ...

    async def insert_wallet_item(self, user_id: UUID, deal_id: UUID, *, claimed_at: datetime) -> WalletItem: ...

    async def insert_redemption(
        self,
        user_id: UUID,
        deal_id: UUID,
        *,
        redeemed_at: datetime,
        wallet_item_id: UUID | None = None,
        redemption_style: str | None = None,
    ) -> RedemptionRecord: ...

    async def count_redemptions(
        self,
        deal_id: UUID,
        *,
        user_id: UUID | None = None,
        unowned_only: bool = False,
    ) -> int: ...

    async def count_deal_wallet_items(self, deal_id: UUID, *, statuses: Sequence[WalletItemStatus]) -> int: ...

    async def mark_deal_sold_out(self, deal_id: UUID) -> None: ...

    def redemption_scope(self, user_id: UUID, deal_id: UUID) -> AbstractAsyncContextManager[None]: ...

    async def list_wallet_items(
        self,
        user_id: UUID,
        *,
        statuses: Sequence[WalletItemStatus] | None = None,
    ) -> list[WalletItem]: ...

    async def list_redemptions(self, user_id: UUID, *, limit: int) -> list[RedemptionRecord]: ...

    async def list_orphaned_redeemed_items(
        self,
        *,
        limit: int,
        redeemed_before: datetime | None = None,
    ) -> list[WalletItem]: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class SqlAlchemyRedemptionStore:
    """``RedemptionStore`` backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def get_user(self, user_id: UUID) -> User | None:
        return await self._session.get(User, user_id, populate_existing=True)

    async def get_deal(self, deal_id: UUID) -> Deal | None:
        return await self._session.get(Deal, deal_id, populate_existing=True)

    async def get_active_plan(self, tier: SubscriptionTier) -> SubscriptionPlan | None:
        # Always read through so admin quota edits apply on the next check
        stmt = (
            select(SubscriptionPlan)
            .where(SubscriptionPlan.tier == tier, SubscriptionPlan.is_active.is_(True))
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def list_active_plans(self) -> list[SubscriptionPlan]:
        stmt = (
            select(SubscriptionPlan)
            .where(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.redemptions_per_period.asc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_active_wallet_items(self, user_id: UUID) -> int:
        stmt = select(func.count(WalletItem.id)).where(
            WalletItem.user_id == user_id,
            WalletItem.status == WalletItemStatus.ACTIVE,
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def find_wallet_item(self, user_id: UUID, deal_id: UUID) -> WalletItem | None:
        """Return the active item for the pair, else the latest redeemed one."""

        stmt = (
            select(WalletItem)
            .where(
                WalletItem.user_id == user_id,
                WalletItem.deal_id == deal_id,
                WalletItem.status.in_([WalletItemStatus.ACTIVE, WalletItemStatus.REDEEMED]),
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        items = list(result.scalars().all())
        for item in items:
            if item.status == WalletItemStatus.ACTIVE:
                return item
        redeemed = sorted(items, key=lambda item: item.redeemed_at or item.claimed_at, reverse=True)
        return redeemed[0] if redeemed else None

    async def transition_wallet_item(
        self,
        user_id: UUID,
        deal_id: UUID,
        *,
        from_status: WalletItemStatus,
        to_status: WalletItemStatus,
        at: datetime,
    ) -> TransitionResult:
        values: dict[str, object] = {"status": to_status}
        if to_status == WalletItemStatus.REDEEMED:
            values["redeemed_at"] = at
        elif to_status == WalletItemStatus.REMOVED:
            values["removed_at"] = at

        stmt = (
            update(WalletItem)
            .where(
                WalletItem.user_id == user_id,
                WalletItem.deal_id == deal_id,
                WalletItem.status == from_status,
            )
            .values(**values)
            .returning(WalletItem.id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        item_ids = list(result.scalars().all())
        return TransitionResult(rows_affected=len(item_ids), item_id=item_ids[0] if item_ids else None)

    async def insert_wallet_item(self, user_id: UUID, deal_id: UUID, *, claimed_at: datetime) -> WalletItem:
        item = WalletItem(
            user_id=user_id,
            deal_id=deal_id,
            status=WalletItemStatus.ACTIVE,
            claimed_at=claimed_at,
        )
        self._session.add(item)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            await self._session.rollback()
            logger.warning(
                "Rejected duplicate active wallet claim",
                user_id=str(user_id),
                deal_id=str(deal_id),
            )
            raise DuplicateActiveClaimError(f"Active wallet item already exists for deal {deal_id}") from exc
        return item

    async def insert_redemption(
        self,
        user_id: UUID,
        deal_id: UUID,
        *,
        redeemed_at: datetime,
        wallet_item_id: UUID | None = None,
        redemption_style: str | None = None,
    ) -> RedemptionRecord:
        record = RedemptionRecord(
            user_id=user_id,
            deal_id=deal_id,
            wallet_item_id=wallet_item_id,
            redemption_style=redemption_style,
            redeemed_at=redeemed_at,
        )
        self._session.add(record)
        await self._session.flush()
        return record

    async def count_redemptions(
        self,
        deal_id: UUID,
        *,
        user_id: UUID | None = None,
        unowned_only: bool = False,
    ) -> int:
        stmt = select(func.count(RedemptionRecord.id)).where(RedemptionRecord.deal_id == deal_id)
        if user_id is not None:
            stmt = stmt.where(RedemptionRecord.user_id == user_id)
        if unowned_only:
            stmt = stmt.where(RedemptionRecord.wallet_item_id.is_(None))
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def count_deal_wallet_items(self, deal_id: UUID, *, statuses: Sequence[WalletItemStatus]) -> int:
        stmt = select(func.count(WalletItem.id)).where(
            WalletItem.deal_id == deal_id,
            WalletItem.status.in_(list(statuses)),
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def mark_deal_sold_out(self, deal_id: UUID) -> None:
        stmt = (
            update(Deal)
            .where(Deal.id == deal_id, Deal.is_sold_out.is_(False))
            .values(is_sold_out=True)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    @asynccontextmanager
    async def redemption_scope(self, user_id: UUID, deal_id: UUID) -> AsyncIterator[None]:
        """Serialize check-then-insert sequences on the user and deal rows.

        Row locks are held until the caller commits or the scope rolls back.
        Dialects without ``FOR UPDATE`` (SQLite) serialize writers anyway.
        """

        await self._session.execute(select(User.id).where(User.id == user_id).with_for_update())
        await self._session.execute(select(Deal.id).where(Deal.id == deal_id).with_for_update())
        try:
            yield
        except BaseException:
            await self._session.rollback()
            raise

    async def list_wallet_items(
        self,
        user_id: UUID,
        *,
        statuses: Sequence[WalletItemStatus] | None = None,
    ) -> list[WalletItem]:
        stmt = (
            select(WalletItem)
            .where(WalletItem.user_id == user_id)
            .order_by(WalletItem.claimed_at.desc(), WalletItem.id.desc())
        )
        if statuses:
            stmt = stmt.where(WalletItem.status.in_(list(statuses)))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_redemptions(self, user_id: UUID, *, limit: int) -> list[RedemptionRecord]:
        stmt = (
            select(RedemptionRecord)
            .where(RedemptionRecord.user_id == user_id)
            .order_by(RedemptionRecord.redeemed_at.desc(), RedemptionRecord.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_orphaned_redeemed_items(
        self,
        *,
        limit: int,
        redeemed_before: datetime | None = None,
    ) -> list[WalletItem]:
        has_record = exists().where(RedemptionRecord.wallet_item_id == WalletItem.id)
        stmt = select(WalletItem).where(WalletItem.status == WalletItemStatus.REDEEMED, ~has_record)
        if redeemed_before is not None:
            stmt = stmt.where(or_(WalletItem.redeemed_at.is_(None), WalletItem.redeemed_at < redeemed_before))
        stmt = stmt.order_by(WalletItem.redeemed_at.asc()).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()


__all__ = [
    "DuplicateActiveClaimError",
    "RedemptionStore",
    "SqlAlchemyRedemptionStore",
    "TransitionResult",
]
