import math

import pytest

from dealpass_api.models import BillingPeriod, SubscriptionTier
from dealpass_api.services.redemptions import (
    EntitlementCalculator,
    PlanNotFoundError,
    UserNotFoundError,
    compute_remaining,
)


def _hold(store, user, count):
    for i in range(count):
        store.add_wallet_item(user, store.add_deal(title=f"held {i}"))


@pytest.mark.asyncio
async def test_basic_tier_with_capacity_left(redemption_store, fixed_now):
    redemption_store.add_plan(SubscriptionTier.BASIC, 10)
    user = redemption_store.add_user(tier=SubscriptionTier.BASIC)
    _hold(redemption_store, user, 5)

    snapshot = await EntitlementCalculator(redemption_store).check_monthly_limit(user.id, now=fixed_now)

    assert (snapshot.allowed, snapshot.remaining, snapshot.limit) == (True, 5, 10)
    assert snapshot.used == 5
    assert snapshot.tier is SubscriptionTier.BASIC


@pytest.mark.asyncio
async def test_free_tier_at_limit_is_denied(redemption_store, fixed_now):
    redemption_store.add_plan(SubscriptionTier.FREE, 3)
    user = redemption_store.add_user(tier=SubscriptionTier.FREE)
    _hold(redemption_store, user, 3)

    snapshot = await EntitlementCalculator(redemption_store).check_monthly_limit(user.id, now=fixed_now)

    assert (snapshot.allowed, snapshot.remaining, snapshot.limit) == (False, 0, 3)


@pytest.mark.asyncio
async def test_over_allocation_clamps_to_zero(redemption_store, fixed_now):
    redemption_store.add_plan(SubscriptionTier.BASIC, 10)
    user = redemption_store.add_user()
    _hold(redemption_store, user, 12)

    snapshot = await EntitlementCalculator(redemption_store).check_monthly_limit(user.id, now=fixed_now)

    assert snapshot.remaining == 0
    assert snapshot.allowed is False


def test_remaining_never_increases_as_holdings_grow():
    previous = None
    for active in range(0, 15):
        allowed, remaining = compute_remaining(10, active)
        assert remaining >= 0
        assert allowed is (remaining > 0)
        if previous is not None:
            assert remaining <= previous
        previous = remaining


@pytest.mark.asyncio
async def test_unlimited_plan_skips_usage_query(redemption_store, fixed_now):
    redemption_store.add_plan(SubscriptionTier.VIP, 999_999)
    user = redemption_store.add_user(tier=SubscriptionTier.VIP)
    _hold(redemption_store, user, 500)

    snapshot = await EntitlementCalculator(redemption_store).check_monthly_limit(user.id, now=fixed_now)

    assert snapshot.allowed is True
    assert math.isinf(snapshot.remaining)
    assert math.isinf(snapshot.limit)
    assert snapshot.used is None
    assert snapshot.is_unlimited
    assert redemption_store.usage_queries == 0


@pytest.mark.asyncio
async def test_yearly_plan_is_normalized_per_month(redemption_store, fixed_now):
    redemption_store.add_plan(SubscriptionTier.PREMIUM, 120, BillingPeriod.YEARLY)
    user = redemption_store.add_user(tier=SubscriptionTier.PREMIUM)

    snapshot = await EntitlementCalculator(redemption_store).check_monthly_limit(user.id, now=fixed_now)

    assert snapshot.limit == 10
    assert snapshot.billing_period is BillingPeriod.YEARLY


@pytest.mark.asyncio
async def test_bonus_grants_raise_the_ceiling(redemption_store, fixed_now):
    redemption_store.add_plan(SubscriptionTier.FREE, 3)
    user = redemption_store.add_user(tier=SubscriptionTier.FREE, extra_redemptions=2)
    _hold(redemption_store, user, 3)

    snapshot = await EntitlementCalculator(redemption_store).check_monthly_limit(user.id, now=fixed_now)

    assert (snapshot.allowed, snapshot.remaining, snapshot.limit) == (True, 2, 5)


@pytest.mark.asyncio
async def test_window_follows_subscription_anchor(redemption_store, fixed_now):
    redemption_store.add_plan(SubscriptionTier.BASIC, 10)
    user = redemption_store.add_user()

    snapshot = await EntitlementCalculator(redemption_store).check_monthly_limit(user.id, now=fixed_now)

    assert snapshot.window.period_start.day == 15
    assert snapshot.window.period_start.month == 3
    assert snapshot.window.period_end.month == 4


@pytest.mark.asyncio
async def test_missing_user_and_plan_are_distinct_failures(redemption_store, fixed_now):
    calculator = EntitlementCalculator(redemption_store)
    user = redemption_store.add_user(tier=SubscriptionTier.NONE)

    with pytest.raises(PlanNotFoundError):
        await calculator.check_monthly_limit(user.id, now=fixed_now)

    del redemption_store.users[user.id]
    with pytest.raises(UserNotFoundError):
        await calculator.check_monthly_limit(user.id, now=fixed_now)
