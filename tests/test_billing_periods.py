"""
Unit tests for billing period arithmetic.
"""
from datetime import datetime, timedelta, timezone

from app.services.billing_periods import (
    compute_local_cancellation_expiry,
    isoformat_utc,
    period_end_for_plan,
    resolve_cancellation_expiry,
    to_naive_utc,
)


def test_to_naive_utc_normalizes_strings_and_aware_values():
    assert to_naive_utc("2025-01-10T12:00:00Z") == datetime(2025, 1, 10, 12, 0)
    assert to_naive_utc("2025-01-10T14:00:00+02:00") == datetime(2025, 1, 10, 12, 0)
    aware = datetime(2025, 1, 10, 7, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert to_naive_utc(aware) == datetime(2025, 1, 10, 12, 0)
    assert to_naive_utc(datetime(2025, 1, 10, 12, 0)) == datetime(2025, 1, 10, 12, 0)
    assert to_naive_utc(None) is None
    assert to_naive_utc("") is None


def test_isoformat_utc():
    assert isoformat_utc(datetime(2025, 1, 10, 12, 0)) == "2025-01-10T12:00:00+00:00"
    assert isoformat_utc(None) is None


def test_period_end_for_plan_clamps_month_end():
    assert period_end_for_plan("monthly", datetime(2025, 1, 31, 10, 0)) == datetime(2025, 2, 28, 10, 0)
    assert period_end_for_plan("monthly", datetime(2025, 12, 15)) == datetime(2026, 1, 15)
    assert period_end_for_plan("yearly", datetime(2024, 2, 29)) == datetime(2025, 2, 28)
    assert period_end_for_plan("one_time", datetime(2025, 1, 1)) is None


def test_monthly_cancellation_expires_first_of_next_month_at_creation_time():
    expires_at = compute_local_cancellation_expiry(
        "monthly",
        created_at=datetime(2024, 11, 5, 9, 30),
        now=datetime(2025, 1, 10, 14, 0),
    )
    assert expires_at == datetime(2025, 2, 1, 9, 30)


def test_monthly_cancellation_rolls_over_year_end():
    expires_at = compute_local_cancellation_expiry(
        "monthly",
        created_at=datetime(2025, 3, 2, 8, 15, 45),
        now=datetime(2025, 12, 20, 23, 0),
    )
    assert expires_at == datetime(2026, 1, 1, 8, 15, 45)


def test_yearly_cancellation_expires_on_next_anniversary():
    expires_at = compute_local_cancellation_expiry(
        "yearly",
        created_at=datetime(2024, 3, 15, 10, 0),
        now=datetime(2025, 1, 10, 14, 0),
    )
    assert expires_at == datetime(2025, 3, 15, 10, 0)


def test_yearly_cancellation_skips_past_anniversaries():
    expires_at = compute_local_cancellation_expiry(
        "yearly",
        created_at=datetime(2022, 3, 15, 10, 0),
        now=datetime(2025, 1, 10, 14, 0),
    )
    assert expires_at == datetime(2025, 3, 15, 10, 0)


def test_yearly_cancellation_on_anniversary_moves_to_following_year():
    expires_at = compute_local_cancellation_expiry(
        "yearly",
        created_at=datetime(2024, 3, 15, 10, 0),
        now=datetime(2025, 3, 15, 10, 0),
    )
    assert expires_at == datetime(2026, 3, 15, 10, 0)


def test_resolve_prefers_provider_period_end():
    expires_at = resolve_cancellation_expiry(
        "monthly",
        created_at=datetime(2024, 11, 5, 9, 30),
        provider_period_end="2025-02-05T09:30:00Z",
        now=datetime(2025, 1, 10, 14, 0),
    )
    assert expires_at == datetime(2025, 2, 5, 9, 30)


def test_resolve_falls_back_to_local_computation():
    expires_at = resolve_cancellation_expiry(
        "monthly",
        created_at=datetime(2024, 11, 5, 9, 30),
        provider_period_end=None,
        now=datetime(2025, 1, 10, 14, 0),
    )
    assert expires_at == datetime(2025, 2, 1, 9, 30)
