import math
from datetime import datetime, timezone

import pytest

from dealpass_api.models import BillingPeriod
from dealpass_api.services.redemptions.renewal import (
    compute_billing_window,
    ensure_utc,
    is_unlimited,
    monthly_allotment,
)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("quota", "period", "expected"),
    [
        (10, BillingPeriod.MONTHLY, 10),
        (120, BillingPeriod.YEARLY, 10),
        (11, BillingPeriod.YEARLY, 0),
        (125, "yearly", 10),
        (0, BillingPeriod.MONTHLY, 0),
    ],
)
def test_monthly_allotment(quota, period, expected):
    assert monthly_allotment(quota, period) == expected


def test_sentinel_quota_is_unlimited_for_either_period():
    assert math.isinf(monthly_allotment(999_999, BillingPeriod.MONTHLY))
    assert math.isinf(monthly_allotment(999_999, BillingPeriod.YEARLY))
    assert is_unlimited(1_000_000)
    assert not is_unlimited(999_998)
    assert math.isinf(monthly_allotment(50, BillingPeriod.MONTHLY, unlimited_threshold=50))


def test_monthly_window_rolls_from_anchor_day():
    window = compute_billing_window(_utc(2026, 1, 15, 9), BillingPeriod.MONTHLY, _utc(2026, 3, 20))

    assert window.period_start == _utc(2026, 3, 15, 9)
    assert window.period_end == _utc(2026, 4, 15, 9)
    assert window.next_renewal == window.period_end


def test_window_before_anchor_day_uses_previous_month():
    window = compute_billing_window(_utc(2026, 1, 15), BillingPeriod.MONTHLY, _utc(2026, 3, 10))

    assert window.period_start == _utc(2026, 2, 15)
    assert window.period_end == _utc(2026, 3, 15)


def test_month_end_anchor_clamps_in_short_months():
    window = compute_billing_window(_utc(2026, 1, 31), BillingPeriod.MONTHLY, _utc(2026, 3, 5))

    assert window.period_start == _utc(2026, 2, 28)
    assert window.period_end == _utc(2026, 3, 31)


def test_leap_year_february_clamps_to_29th():
    window = compute_billing_window(_utc(2027, 12, 31), BillingPeriod.MONTHLY, _utc(2028, 3, 1))

    assert window.period_start == _utc(2028, 2, 29)
    assert window.period_end == _utc(2028, 3, 31)


def test_yearly_plan_renews_on_anniversary():
    window = compute_billing_window(_utc(2025, 6, 10), BillingPeriod.YEARLY, _utc(2026, 3, 20))

    assert window.period_start == _utc(2026, 3, 10)
    assert window.period_end == _utc(2026, 4, 10)
    assert window.next_renewal == _utc(2026, 6, 10)


def test_yearly_renewal_rolls_to_next_year_after_anniversary():
    window = compute_billing_window(_utc(2025, 2, 1), BillingPeriod.YEARLY, _utc(2026, 3, 20))

    assert window.next_renewal == _utc(2027, 2, 1)


def test_reference_before_anchor_starts_at_anchor():
    window = compute_billing_window(_utc(2026, 5, 1), BillingPeriod.MONTHLY, _utc(2026, 4, 1))

    assert window.period_start == _utc(2026, 5, 1)
    assert window.period_end == _utc(2026, 6, 1)


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime(2026, 1, 15, 9)

    assert ensure_utc(naive) == _utc(2026, 1, 15, 9)
    window = compute_billing_window(naive, BillingPeriod.MONTHLY, datetime(2026, 3, 20))
    assert window.period_start.tzinfo is not None
