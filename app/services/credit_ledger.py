"""
Credit ledger reconciliation.

Pure functions over a user's credit records (ORM rows or any object with the
same attributes). No database access happens here; callers load the records,
persist any status changes these functions ask for, and render the summary.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from app.core.plans import PLAN_ONE_TIME
from app.db.models.user_credit import STATUS_ACTIVE
from app.services.billing_periods import isoformat_utc, to_naive_utc

NO_RECORDS_MESSAGE = "You can purchase a new plan."
NO_ACTIVE_PLAN_MESSAGE = "You do not have an active plan. Please purchase a new one."
OUT_OF_CREDITS_MESSAGE = "You have an active plan but have run out of credits. You can purchase more."


def _created_key(record: Any):
    created_at = to_naive_utc(getattr(record, "created_at", None)) or datetime.min
    return (created_at, getattr(record, "id", None) or 0)


def order_records(records: Iterable[Any]) -> List[Any]:
    """Oldest to newest by creation time (id breaks ties)."""
    return sorted(records, key=_created_key)


def is_active(record: Any) -> bool:
    return record.status == STATUS_ACTIVE


def find_stale_one_time_records(records: Iterable[Any]) -> List[Any]:
    """Active one-time packs whose balance is used up; these must be expired before counting."""
    return [
        record for record in records
        if is_active(record) and record.plan_type == PLAN_ONE_TIME and (record.credits or 0) == 0
    ]


def total_active_credits(records: Iterable[Any]) -> int:
    """Sum of credits across every active record, whichever subscription it came from."""
    return sum(record.credits or 0 for record in records if is_active(record))


def select_representative_record(records: Sequence[Any]) -> Optional[Any]:
    """
    Pick the one record whose plan details are shown to the user.

    Priority:
        1. newest active, not cancelled, with a subscription_id
        2. newest active, not cancelled, with credits left
        3. newest active (even if cancelled)
        4. newest record of any status

    Returns:
        The chosen record, or None when there are no records at all
    """
    ordered = order_records(records)
    if not ordered:
        return None

    active = [record for record in ordered if is_active(record)]
    newest_first = list(reversed([record for record in active if not record.subscription_status_canceled]))

    for record in newest_first:
        if record.subscription_id:
            return record
    for record in newest_first:
        if (record.credits or 0) > 0:
            return record
    if active:
        return active[-1]
    return ordered[-1]


def empty_credit_summary() -> Dict[str, Any]:
    """Summary for a user who has never bought anything."""
    return {
        "credits": 0,
        "membershipStatus": "inactive",
        "planType": "none",
        "canBuy": True,
        "hasEverHadSubscription": False,
        "message": NO_RECORDS_MESSAGE,
        "subscription_id": None,
        "membership": None,
        "expires_at": None,
        "subscription_status_canceled": False,
        "payment_provider": None,
    }


def build_credit_summary(records: Sequence[Any], has_ever_had_subscription: bool = False) -> Dict[str, Any]:
    """
    Flatten a user's records into the summary shown on the billing page.

    Stale one-time records must already have been expired by the caller.
    """
    if not records:
        summary = empty_credit_summary()
        summary["hasEverHadSubscription"] = bool(has_ever_had_subscription)
        return summary

    total = total_active_credits(records)
    has_active = any(is_active(record) for record in records)
    source = select_representative_record(records)

    if has_active:
        membership_status = STATUS_ACTIVE
        if total > 0:
            message = (
                f"You have an active plan with a total of {total} credits. "
                "You can add more at any time."
            )
        else:
            message = OUT_OF_CREDITS_MESSAGE
    else:
        membership_status = source.status
        message = NO_ACTIVE_PLAN_MESSAGE

    return {
        "credits": total,
        "membershipStatus": membership_status,
        "planType": source.plan_type,
        "canBuy": True,
        "hasEverHadSubscription": bool(has_ever_had_subscription),
        "message": message,
        "subscription_id": source.subscription_id,
        "membership": source.membership,
        "expires_at": isoformat_utc(source.expires_at),
        "subscription_status_canceled": bool(source.subscription_status_canceled),
        "payment_provider": source.payment_provider or None,
    }
