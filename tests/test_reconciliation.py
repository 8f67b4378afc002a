from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from dealpass_api.models import SubscriptionTier, WalletItemStatus
from dealpass_api.services.redemptions import RedemptionEngine, find_orphaned_redemptions, reconcile_redemptions


@pytest.mark.asyncio
async def test_failed_record_insert_is_found_and_repaired(redemption_store, telemetry, fixed_now):
    redemption_store.add_plan(SubscriptionTier.BASIC, 10)
    user = redemption_store.add_user()
    deal = redemption_store.add_deal()
    item = redemption_store.add_wallet_item(user, deal)
    redemption_store.redemption_insert_error = TimeoutError("statement timeout")

    with pytest.raises(TimeoutError):
        await RedemptionEngine(redemption_store, telemetry=telemetry, clock=lambda: fixed_now).redeem_deal(
            user.id, deal.id
        )
    redemption_store.redemption_insert_error = None
    later = fixed_now + timedelta(hours=1)

    orphans = await find_orphaned_redemptions(redemption_store, limit=10)
    assert [orphan.id for orphan in orphans] == [item.id]

    report = await reconcile_redemptions(redemption_store, limit=10, telemetry=telemetry, now=later)
    assert report.orphaned == 1
    assert report.repaired == 0
    assert redemption_store.redemptions == []

    repaired = await reconcile_redemptions(
        redemption_store, limit=10, repair=True, telemetry=telemetry, now=later
    )
    assert repaired.repaired == 1
    (record,) = redemption_store.redemptions
    assert record.wallet_item_id == item.id
    assert record.redeemed_at == fixed_now

    assert (await reconcile_redemptions(redemption_store, limit=10, telemetry=telemetry, now=later)).orphaned == 0
    assert telemetry.snapshot().reconciliation == {"runs": 3, "orphaned": 2, "repaired": 1}


@pytest.mark.asyncio
async def test_consistent_redemptions_are_not_reported(redemption_store, telemetry, fixed_now):
    redemption_store.add_plan(SubscriptionTier.BASIC, 10)
    user = redemption_store.add_user()
    deal = redemption_store.add_deal()
    redemption_store.add_wallet_item(user, deal)
    redemption_store.add_wallet_item(user, redemption_store.add_deal(), WalletItemStatus.REMOVED)

    await RedemptionEngine(redemption_store, telemetry=telemetry, clock=lambda: fixed_now).redeem_deal(
        user.id, deal.id
    )

    later = fixed_now + timedelta(hours=1)
    summary = await reconcile_redemptions(
        redemption_store, limit=10, repair=True, telemetry=telemetry, now=later
    )
    assert summary.as_dict() == {"orphaned": 0, "repaired": 0, "wallet_item_ids": []}


@pytest.mark.asyncio
async def test_sweep_skips_redemption_still_writing_its_record(redemption_store, telemetry, fixed_now):
    redemption_store.add_plan(SubscriptionTier.BASIC, 10)
    user = redemption_store.add_user()
    deal = redemption_store.add_deal()
    item = redemption_store.add_wallet_item(user, deal)

    commit = redemption_store.commit
    sweeps = []

    async def commit_then_sweep():
        await commit()
        if not sweeps:
            sweeps.append(None)
            sweeps[0] = await reconcile_redemptions(
                redemption_store, limit=10, repair=True, telemetry=telemetry, grace_seconds=300, now=fixed_now
            )

    redemption_store.commit = commit_then_sweep
    record = await RedemptionEngine(redemption_store, telemetry=telemetry, clock=lambda: fixed_now).redeem_deal(
        user.id, deal.id
    )

    assert sweeps[0].orphaned == 0
    assert redemption_store.records_for(user.id, deal.id) == [record]
    assert record.wallet_item_id == item.id
    assert telemetry.snapshot().inconsistencies == 0


@pytest.mark.asyncio
async def test_orphan_is_reported_once_grace_period_elapses(redemption_store, telemetry, fixed_now):
    user = redemption_store.add_user()
    deal = redemption_store.add_deal()
    item = redemption_store.add_wallet_item(user, deal, WalletItemStatus.REDEEMED, redeemed_at=fixed_now)

    early = await reconcile_redemptions(
        redemption_store, limit=10, telemetry=telemetry, grace_seconds=300, now=fixed_now + timedelta(seconds=60)
    )
    late = await reconcile_redemptions(
        redemption_store, limit=10, telemetry=telemetry, grace_seconds=300, now=fixed_now + timedelta(seconds=301)
    )

    assert early.orphaned == 0
    assert late.wallet_item_ids == [str(item.id)]


@pytest.mark.asyncio
async def test_second_record_for_same_wallet_item_is_rejected(redemption_store, fixed_now):
    user = redemption_store.add_user()
    deal = redemption_store.add_deal()
    item = redemption_store.add_wallet_item(user, deal, WalletItemStatus.REDEEMED, redeemed_at=fixed_now)

    await redemption_store.insert_redemption(user.id, deal.id, redeemed_at=fixed_now, wallet_item_id=item.id)
    with pytest.raises(IntegrityError):
        await redemption_store.insert_redemption(user.id, deal.id, redeemed_at=fixed_now, wallet_item_id=item.id)

    assert len(redemption_store.records_for(user.id, deal.id)) == 1
