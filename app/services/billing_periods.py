"""
Billing period arithmetic.

All values are handled as naive UTC datetimes, which is how the
timestamp columns are stored.
"""
from datetime import datetime, timezone
from typing import Optional, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from app.core.plans import PLAN_MONTHLY, PLAN_YEARLY
from app.db.base import utcnow


def to_naive_utc(value: Optional[Union[datetime, str]]) -> Optional[datetime]:
    """
    Normalize a datetime (or ISO-8601 string) to naive UTC.

    Aware values are converted to UTC first; naive values are assumed to be
    UTC already.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = date_parser.isoparse(value)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as an ISO-8601 string with an explicit UTC offset."""
    value = to_naive_utc(value)
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()


def period_end_for_plan(plan_type: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Expiry for a newly purchased period.

    Monthly plans run one calendar month, yearly plans one year. Day overflow
    is clamped (Jan 31 -> Feb 28/29). One-time packs never expire.
    """
    now = to_naive_utc(now) or utcnow()
    if plan_type == PLAN_MONTHLY:
        return now + relativedelta(months=1)
    if plan_type == PLAN_YEARLY:
        return now + relativedelta(years=1)
    return None


def compute_local_cancellation_expiry(
    plan_type: str,
    created_at: datetime,
    now: Optional[datetime] = None
) -> datetime:
    """
    End of the paid period for a subscription cancelled at `now`.

    Yearly: the first anniversary of `created_at` strictly after `now`.
    Monthly (and anything else): the 1st of the month following `now`,
    at the time of day of `created_at`.
    """
    now = to_naive_utc(now) or utcnow()
    created_at = to_naive_utc(created_at) or now

    if plan_type == PLAN_YEARLY:
        years = 0
        expires_at = created_at
        while expires_at <= now:
            years += 1
            # Always offset from the original date so Feb 29 is not clamped twice
            expires_at = created_at + relativedelta(years=years)
        return expires_at

    first_of_next_month = (now + relativedelta(months=1)).replace(day=1)
    return first_of_next_month.replace(
        hour=created_at.hour,
        minute=created_at.minute,
        second=created_at.second,
        microsecond=0,
    )


def resolve_cancellation_expiry(
    plan_type: str,
    created_at: datetime,
    provider_period_end: Optional[Union[datetime, str]] = None,
    now: Optional[datetime] = None
) -> datetime:
    """Prefer the period end reported by the payment provider; fall back to the local computation."""
    reported = to_naive_utc(provider_period_end)
    if reported is not None:
        return reported
    return compute_local_cancellation_expiry(plan_type, created_at, now)
