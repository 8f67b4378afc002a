"""Seed the default subscription plan quotas into the API database.

Existing active plans for a tier are updated in place so the script can be
re-run after quota changes.

Example:
    python tooling/scripts/seed_subscription_plans.py --vip-yearly
"""

from __future__ import annotations

import argparse
import asyncio
from typing import TypedDict

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dealpass_api.core.settings import settings
from dealpass_api.models.subscription_plan import BillingPeriod, SubscriptionPlan
from dealpass_api.models.user import SubscriptionTier


class SeedPlan(TypedDict):
    tier: SubscriptionTier
    name: str
    redemptions_per_period: int
    billing_period: BillingPeriod


DEFAULT_PLANS: list[SeedPlan] = [
    {"tier": SubscriptionTier.NONE, "name": "No membership", "redemptions_per_period": 0, "billing_period": BillingPeriod.MONTHLY},
    {"tier": SubscriptionTier.FREE, "name": "Free", "redemptions_per_period": 1, "billing_period": BillingPeriod.MONTHLY},
    {"tier": SubscriptionTier.BASIC, "name": "Basic", "redemptions_per_period": 5, "billing_period": BillingPeriod.MONTHLY},
    {"tier": SubscriptionTier.PREMIUM, "name": "Premium", "redemptions_per_period": 20, "billing_period": BillingPeriod.MONTHLY},
    {
        "tier": SubscriptionTier.VIP,
        "name": "VIP",
        "redemptions_per_period": settings.unlimited_redemptions_threshold,
        "billing_period": BillingPeriod.MONTHLY,
    },
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed default subscription plan quotas")
    parser.add_argument(
        "--vip-yearly",
        action="store_true",
        help="Bill the VIP plan yearly instead of monthly.",
    )
    return parser.parse_args()


async def seed_plans(session: AsyncSession, plans: list[SeedPlan]) -> dict[str, int]:
    summary = {"created": 0, "updated": 0}
    for plan in plans:
        existing = await session.execute(
            select(SubscriptionPlan).where(
                SubscriptionPlan.tier == plan["tier"],
                SubscriptionPlan.is_active.is_(True),
            )
        )
        record = existing.scalar_one_or_none()
        if record:
            record.name = plan["name"]
            record.redemptions_per_period = plan["redemptions_per_period"]
            record.billing_period = plan["billing_period"]
            summary["updated"] += 1
        else:
            session.add(SubscriptionPlan(is_active=True, **plan))
            summary["created"] += 1
    await session.commit()
    return summary


async def _run(vip_yearly: bool) -> dict[str, int]:
    plans = [dict(plan) for plan in DEFAULT_PLANS]
    if vip_yearly:
        for plan in plans:
            if plan["tier"] is SubscriptionTier.VIP:
                plan["billing_period"] = BillingPeriod.YEARLY

    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    try:
        async with session_factory() as session:
            return await seed_plans(session, plans)  # type: ignore[arg-type]
    finally:
        await engine.dispose()


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.vip_yearly))
    logger.success("Subscription plans ready", **summary)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
