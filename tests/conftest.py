import asyncio
import sys
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Sequence
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from dealpass_api.app import create_app  # noqa: E402
from dealpass_api.db.base import Base  # noqa: E402
from dealpass_api.db.session import get_session  # noqa: E402
from dealpass_api.models import (  # noqa: E402
    BillingPeriod,
    Deal,
    RedemptionRecord,
    SubscriptionPlan,
    SubscriptionTier,
    User,
    WalletItem,
    WalletItemStatus,
)
from dealpass_api.observability.redemptions import RedemptionObservabilityStore  # noqa: E402
from dealpass_api.services.redemptions.store import DuplicateActiveClaimError, TransitionResult  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


class InMemoryRedemptionStore:
    """Fake ``RedemptionStore`` that keeps rows in lists.

    Every method yields to the event loop before touching state so concurrent
    callers interleave at each storage call. The conditional transition reads
    and writes without yielding in between, which is what makes it atomic.
    """

    def __init__(self) -> None:
        self.users: dict[UUID, User] = {}
        self.deals: dict[UUID, Deal] = {}
        self.plans: list[SubscriptionPlan] = []
        self.wallet_items: list[WalletItem] = []
        self.redemptions: list[RedemptionRecord] = []
        self.usage_queries = 0
        self.commits = 0
        self.rollbacks = 0
        self.redemption_insert_error: Exception | None = None
        self._locks: dict[object, asyncio.Lock] = defaultdict(asyncio.Lock)

    # seeding helpers

    def add_user(
        self,
        *,
        tier: SubscriptionTier = SubscriptionTier.BASIC,
        extra_redemptions: int = 0,
        subscription_started_at: datetime | None = None,
    ) -> User:
        user = User(
            id=uuid4(),
            email=f"{uuid4().hex[:8]}@dealpass.test",
            tier=tier,
            extra_redemptions=extra_redemptions,
            subscription_started_at=subscription_started_at or datetime(2026, 1, 15, tzinfo=timezone.utc),
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        self.users[user.id] = user
        return user

    def add_plan(
        self,
        tier: SubscriptionTier,
        redemptions_per_period: int,
        billing_period: BillingPeriod = BillingPeriod.MONTHLY,
    ) -> SubscriptionPlan:
        plan = SubscriptionPlan(
            id=uuid4(),
            tier=tier,
            name=tier.value.title(),
            redemptions_per_period=redemptions_per_period,
            billing_period=billing_period,
            is_active=True,
        )
        self.plans.append(plan)
        return plan

    def add_deal(self, **overrides) -> Deal:
        values = {
            "id": uuid4(),
            "title": "Two-for-one coffee",
            "required_tier": SubscriptionTier.FREE,
            "max_redemptions_total": None,
            "max_user_redemptions": None,
            "is_sold_out": False,
            "expires_at": None,
        }
        values.update(overrides)
        deal = Deal(**values)
        self.deals[deal.id] = deal
        return deal

    def add_wallet_item(
        self,
        user: User,
        deal: Deal,
        status: WalletItemStatus = WalletItemStatus.ACTIVE,
        *,
        redeemed_at: datetime | None = None,
    ) -> WalletItem:
        item = WalletItem(
            id=uuid4(),
            user_id=user.id,
            deal_id=deal.id,
            status=status,
            claimed_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
            redeemed_at=redeemed_at,
        )
        self.wallet_items.append(item)
        return item

    def records_for(self, user_id: UUID, deal_id: UUID) -> list[RedemptionRecord]:
        return [r for r in self.redemptions if r.user_id == user_id and r.deal_id == deal_id]

    # RedemptionStore

    async def get_user(self, user_id: UUID) -> User | None:
        await asyncio.sleep(0)
        return self.users.get(user_id)

    async def get_deal(self, deal_id: UUID) -> Deal | None:
        await asyncio.sleep(0)
        return self.deals.get(deal_id)

    async def get_active_plan(self, tier: SubscriptionTier) -> SubscriptionPlan | None:
        await asyncio.sleep(0)
        for plan in self.plans:
            if plan.tier == tier and plan.is_active:
                return plan
        return None

    async def list_active_plans(self) -> list[SubscriptionPlan]:
        await asyncio.sleep(0)
        return sorted((p for p in self.plans if p.is_active), key=lambda p: p.redemptions_per_period)

    async def count_active_wallet_items(self, user_id: UUID) -> int:
        await asyncio.sleep(0)
        self.usage_queries += 1
        return sum(1 for i in self.wallet_items if i.user_id == user_id and i.status == WalletItemStatus.ACTIVE)

    async def find_wallet_item(self, user_id: UUID, deal_id: UUID) -> WalletItem | None:
        await asyncio.sleep(0)
        matches = [i for i in self.wallet_items if i.user_id == user_id and i.deal_id == deal_id]
        for item in matches:
            if item.status == WalletItemStatus.ACTIVE:
                return item
        for item in reversed(matches):
            if item.status == WalletItemStatus.REDEEMED:
                return item
        return None

    async def transition_wallet_item(
        self,
        user_id: UUID,
        deal_id: UUID,
        *,
        from_status: WalletItemStatus,
        to_status: WalletItemStatus,
        at: datetime,
    ) -> TransitionResult:
        await asyncio.sleep(0)
        for item in self.wallet_items:
            if item.user_id == user_id and item.deal_id == deal_id and item.status == from_status:
                item.status = to_status
                if to_status == WalletItemStatus.REDEEMED:
                    item.redeemed_at = at
                elif to_status == WalletItemStatus.REMOVED:
                    item.removed_at = at
                return TransitionResult(rows_affected=1, item_id=item.id)
        return TransitionResult(rows_affected=0)

    async def insert_wallet_item(self, user_id: UUID, deal_id: UUID, *, claimed_at: datetime) -> WalletItem:
        await asyncio.sleep(0)
        for item in self.wallet_items:
            if item.user_id == user_id and item.deal_id == deal_id and item.status == WalletItemStatus.ACTIVE:
                raise DuplicateActiveClaimError(f"Active wallet item already exists for deal {deal_id}")
        item = WalletItem(
            id=uuid4(),
            user_id=user_id,
            deal_id=deal_id,
            status=WalletItemStatus.ACTIVE,
            claimed_at=claimed_at,
        )
        self.wallet_items.append(item)
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
        await asyncio.sleep(0)
        if self.redemption_insert_error is not None:
            raise self.redemption_insert_error
        if wallet_item_id is not None and any(r.wallet_item_id == wallet_item_id for r in self.redemptions):
            raise IntegrityError(
                "INSERT INTO redemption_records",
                None,
                Exception("UNIQUE constraint failed: redemption_records.wallet_item_id"),
            )
        record = RedemptionRecord(
            id=uuid4(),
            user_id=user_id,
            deal_id=deal_id,
            wallet_item_id=wallet_item_id,
            redemption_style=redemption_style,
            redeemed_at=redeemed_at,
        )
        self.redemptions.append(record)
        return record

    async def count_redemptions(
        self,
        deal_id: UUID,
        *,
        user_id: UUID | None = None,
        unowned_only: bool = False,
    ) -> int:
        await asyncio.sleep(0)
        return sum(
            1
            for r in self.redemptions
            if r.deal_id == deal_id
            and (user_id is None or r.user_id == user_id)
            and (not unowned_only or r.wallet_item_id is None)
        )

    async def count_deal_wallet_items(self, deal_id: UUID, *, statuses: Sequence[WalletItemStatus]) -> int:
        await asyncio.sleep(0)
        return sum(1 for i in self.wallet_items if i.deal_id == deal_id and i.status in statuses)

    async def mark_deal_sold_out(self, deal_id: UUID) -> None:
        await asyncio.sleep(0)
        self.deals[deal_id].is_sold_out = True

    @asynccontextmanager
    async def redemption_scope(self, user_id: UUID, deal_id: UUID) -> AsyncIterator[None]:
        # Same acquisition order everywhere: user first, then deal
        async with self._locks[("user", user_id)]:
            async with self._locks[("deal", deal_id)]:
                yield

    async def list_wallet_items(
        self,
        user_id: UUID,
        *,
        statuses: Sequence[WalletItemStatus] | None = None,
    ) -> list[WalletItem]:
        await asyncio.sleep(0)
        items = [i for i in self.wallet_items if i.user_id == user_id]
        if statuses:
            items = [i for i in items if i.status in statuses]
        return list(reversed(items))

    async def list_redemptions(self, user_id: UUID, *, limit: int) -> list[RedemptionRecord]:
        await asyncio.sleep(0)
        records = [r for r in self.redemptions if r.user_id == user_id]
        return sorted(records, key=lambda r: r.redeemed_at, reverse=True)[:limit]

    async def list_orphaned_redeemed_items(
        self,
        *,
        limit: int,
        redeemed_before: datetime | None = None,
    ) -> list[WalletItem]:
        await asyncio.sleep(0)
        recorded = {r.wallet_item_id for r in self.redemptions if r.wallet_item_id is not None}
        orphans = [
            i
            for i in self.wallet_items
            if i.status == WalletItemStatus.REDEEMED
            and i.id not in recorded
            and (redeemed_before is None or i.redeemed_at is None or i.redeemed_at < redeemed_before)
        ]
        return orphans[:limit]

    async def commit(self) -> None:
        await asyncio.sleep(0)
        self.commits += 1

    async def rollback(self) -> None:
        await asyncio.sleep(0)
        self.rollbacks += 1


@pytest.fixture
def redemption_store() -> InMemoryRedemptionStore:
    return InMemoryRedemptionStore()


@pytest.fixture
def telemetry() -> RedemptionObservabilityStore:
    return RedemptionObservabilityStore()


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 3, 20, 12, 0, tzinfo=timezone.utc)
