"""Billing period arithmetic for redemption allotments.

Allotments refresh on a rolling monthly cadence anchored on the day the
subscription started, whatever the billing period. Yearly plans spread their
quota evenly across months; they renew (bill) on the anchor's anniversary.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from dealpass_api.models.subscription_plan import BillingPeriod


UNLIMITED_REDEMPTIONS_SENTINEL = 999_999
MONTHS_PER_YEAR = 12


@dataclass(frozen=True, slots=True)
class BillingWindow:
    """Current allotment window plus the next billing renewal."""

    period_start: datetime
    period_end: datetime
    next_renewal: datetime


def is_unlimited(redemptions_per_period: int | float, *, threshold: int = UNLIMITED_REDEMPTIONS_SENTINEL) -> bool:
    return redemptions_per_period >= threshold


def monthly_allotment(
    redemptions_per_period: int,
    billing_period: BillingPeriod | str,
    *,
    unlimited_threshold: int = UNLIMITED_REDEMPTIONS_SENTINEL,
) -> int | float:
    """Normalize a plan quota to redemptions per month.

    Returns ``math.inf`` for unlimited plans. Yearly quotas are floored, so a
    yearly plan with fewer than twelve redemptions yields zero per month.
    """

    if is_unlimited(redemptions_per_period, threshold=unlimited_threshold):
        return math.inf
    quota = max(int(redemptions_per_period), 0)
    if BillingPeriod(billing_period) is BillingPeriod.YEARLY:
        return quota // MONTHS_PER_YEAR
    return quota


def compute_billing_window(
    anchor: datetime,
    billing_period: BillingPeriod | str,
    now: datetime | None = None,
) -> BillingWindow:
    """Return the monthly window containing ``now`` and the next renewal date."""

    anchor = ensure_utc(anchor)
    reference = ensure_utc(now) if now is not None else datetime.now(timezone.utc)

    if reference < anchor:
        period_start = anchor
    else:
        period_start = _month_boundary(anchor, reference.year, reference.month)
        if period_start > reference:
            year, month = _shift_month(reference.year, reference.month, -1)
            period_start = _month_boundary(anchor, year, month)

    end_year, end_month = _shift_month(period_start.year, period_start.month, 1)
    period_end = _month_boundary(anchor, end_year, end_month)

    if BillingPeriod(billing_period) is BillingPeriod.YEARLY:
        next_renewal = _next_anniversary(anchor, reference)
    else:
        next_renewal = period_end

    return BillingWindow(period_start=period_start, period_end=period_end, next_renewal=next_renewal)


def _next_anniversary(anchor: datetime, reference: datetime) -> datetime:
    candidate = _month_boundary(anchor, reference.year, anchor.month)
    if candidate <= reference:
        candidate = _month_boundary(anchor, reference.year + 1, anchor.month)
    if candidate <= anchor:
        candidate = _month_boundary(anchor, anchor.year + 1, anchor.month)
    return candidate


def _month_boundary(anchor: datetime, year: int, month: int) -> datetime:
    # Anchors past the end of a short month clamp to its last day
    last_day = calendar.monthrange(year, month)[1]
    return anchor.replace(year=year, month=month, day=min(anchor.day, last_day))


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = [
    "BillingWindow",
    "MONTHS_PER_YEAR",
    "UNLIMITED_REDEMPTIONS_SENTINEL",
    "compute_billing_window",
    "ensure_utc",
    "is_unlimited",
    "monthly_allotment",
]
