"""
Unit tests for credit ledger reconciliation (no database).
"""
from datetime import datetime
from types import SimpleNamespace

from app.services.credit_ledger import (
    NO_ACTIVE_PLAN_MESSAGE,
    NO_RECORDS_MESSAGE,
    OUT_OF_CREDITS_MESSAGE,
    build_credit_summary,
    empty_credit_summary,
    find_stale_one_time_records,
    select_representative_record,
    total_active_credits,
)


def make_record(id, credits=0, status="active", plan_type="monthly", subscription_id=None,
                canceled=False, created_day=1, membership="pro", expires_at=None, payment_provider=None):
    return SimpleNamespace(
        id=id,
        credits=credits,
        status=status,
        plan_type=plan_type,
        subscription_id=subscription_id,
        subscription_status_canceled=canceled,
        created_at=datetime(2025, 1, created_day, 12, 0),
        membership=membership,
        expires_at=expires_at,
        payment_provider=payment_provider,
    )


def test_total_counts_only_active_records():
    records = [
        make_record(1, credits=100),
        make_record(2, credits=40, status="expired"),
        make_record(3, credits=30, plan_type="one_time", membership="add_on"),
    ]
    assert total_active_credits(records) == 130


def test_stale_one_time_records():
    used_up = make_record(1, credits=0, plan_type="one_time")
    records = [
        used_up,
        make_record(2, credits=0, plan_type="monthly"),
        make_record(3, credits=10, plan_type="one_time"),
        make_record(4, credits=0, plan_type="one_time", status="expired"),
    ]
    assert find_stale_one_time_records(records) == [used_up]


def test_non_cancelled_subscription_wins_over_newer_cancelled_one():
    a = make_record(1, subscription_id="A", created_day=1)
    b = make_record(2, subscription_id="B", canceled=True, created_day=2)
    assert select_representative_record([a, b]) is a


def test_newest_subscription_record_wins():
    older = make_record(1, subscription_id="A", created_day=1)
    newer = make_record(2, subscription_id="B", created_day=5)
    pack = make_record(3, credits=30, plan_type="one_time", created_day=9)
    assert select_representative_record([newer, pack, older]) is newer


def test_falls_back_to_record_with_credits():
    pack = make_record(1, credits=20, plan_type="one_time", created_day=1)
    cancelled = make_record(2, credits=0, subscription_id="B", canceled=True, created_day=5)
    assert select_representative_record([pack, cancelled]) is pack


def test_falls_back_to_newest_active_even_if_cancelled():
    first = make_record(1, subscription_id="A", canceled=True, created_day=1)
    second = make_record(2, subscription_id="B", canceled=True, created_day=5)
    assert select_representative_record([second, first]) is second


def test_falls_back_to_newest_record_of_any_status():
    first = make_record(1, status="expired", created_day=1)
    second = make_record(2, status="expired", created_day=5)
    assert select_representative_record([first, second]) is second


def test_selection_without_records():
    assert select_representative_record([]) is None


def test_selection_is_independent_of_input_order():
    records = [
        make_record(1, subscription_id="A", created_day=3),
        make_record(2, credits=50, plan_type="one_time", created_day=4),
        make_record(3, subscription_id="C", canceled=True, created_day=6),
    ]
    assert select_representative_record(records) is select_representative_record(list(reversed(records)))


def test_empty_summary():
    summary = empty_credit_summary()
    assert summary["credits"] == 0
    assert summary["membershipStatus"] == "inactive"
    assert summary["planType"] == "none"
    assert summary["canBuy"] is True
    assert summary["message"] == NO_RECORDS_MESSAGE


def test_active_summary_uses_representative_record():
    records = [
        make_record(1, credits=150, subscription_id="I-1", payment_provider="paypal",
                    expires_at=datetime(2025, 2, 1, 12, 0)),
        make_record(2, credits=30, plan_type="one_time", membership="add_on", created_day=4),
    ]

    summary = build_credit_summary(records, has_ever_had_subscription=True)

    assert summary["credits"] == 180
    assert summary["membershipStatus"] == "active"
    assert summary["planType"] == "monthly"
    assert summary["subscription_id"] == "I-1"
    assert summary["membership"] == "pro"
    assert summary["payment_provider"] == "paypal"
    assert summary["expires_at"] == "2025-02-01T12:00:00+00:00"
    assert summary["hasEverHadSubscription"] is True
    assert summary["message"] == (
        "You have an active plan with a total of 180 credits. You can add more at any time."
    )


def test_active_summary_without_credits():
    summary = build_credit_summary([make_record(1, credits=0, subscription_id="I-1")])
    assert summary["credits"] == 0
    assert summary["membershipStatus"] == "active"
    assert summary["message"] == OUT_OF_CREDITS_MESSAGE


def test_expired_only_summary():
    summary = build_credit_summary([make_record(1, credits=20, status="expired", plan_type="yearly")])
    assert summary["credits"] == 0
    assert summary["membershipStatus"] == "expired"
    assert summary["planType"] == "yearly"
    assert summary["canBuy"] is True
    assert summary["message"] == NO_ACTIVE_PLAN_MESSAGE
