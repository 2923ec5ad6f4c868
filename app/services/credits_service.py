"""
Credits summary service.

Single source of truth for the credits/subscription summary shown to a user.
Used by the billing page on first load and whenever the frontend's realtime
channel reports a change to the user's credit rows.
"""
import logging
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.db.base import utcnow
from app.db.models.user_credit import UserCredit, STATUS_EXPIRED
from app.services.credit_ledger import (
    build_credit_summary,
    empty_credit_summary,
    find_stale_one_time_records,
)

logger = logging.getLogger(__name__)

PRO_MEMBERSHIPS = ["pro"]


def get_credit_records(db: Session, user_id: str) -> List[UserCredit]:
    """All of a user's credit records, oldest first."""
    return (
        db.query(UserCredit)
        .filter(UserCredit.user_id == user_id)
        .order_by(UserCredit.created_at.asc(), UserCredit.id.asc())
        .all()
    )


def has_ever_had_pro_subscription(db: Session, user_id: str) -> bool:
    """Whether the user has held a pro record at any point, active or not."""
    record = (
        db.query(UserCredit.id)
        .filter(UserCredit.user_id == user_id, UserCredit.membership.in_(PRO_MEMBERSHIPS))
        .first()
    )
    return record is not None


def expire_records(db: Session, records: List[UserCredit]) -> None:
    """Flip the given records to expired and commit."""
    ids = [record.id for record in records]
    now = utcnow()
    db.query(UserCredit).filter(UserCredit.id.in_(ids)).update(
        {UserCredit.status: STATUS_EXPIRED, UserCredit.updated_at: now},
        synchronize_session=False,
    )
    db.commit()
    for record in records:
        record.status = STATUS_EXPIRED
        record.updated_at = now


def get_user_credits(db: Session, user_id: Optional[str]) -> Dict[str, Any]:
    """
    Build the credits summary for a user.

    Side effect: active one-time packs with a zero balance are expired in
    storage before totals are computed.

    Args:
        db: Database session
        user_id: Authenticated user id (None when the request is anonymous)

    Returns:
        {"success": True, "data": {...}} or {"success": False, "error": "..."}.
        Never raises.
    """
    if not user_id:
        return {"success": False, "error": "User not authenticated"}

    try:
        records = get_credit_records(db, user_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to fetch credit records: user_id={user_id}, error={e}")
        return {"success": False, "error": "Failed to fetch user credit history"}

    if not records:
        return {"success": True, "data": empty_credit_summary()}

    try:
        stale = find_stale_one_time_records(records)
        if stale:
            expire_records(db, stale)
            logger.info(
                f"Expired used-up one-time packs: user_id={user_id}, "
                f"record_ids={[record.id for record in stale]}"
            )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to expire used-up one-time packs: user_id={user_id}, error={e}")
        return {"success": False, "error": "Failed to update user credit history"}

    try:
        has_ever_had_subscription = has_ever_had_pro_subscription(db, user_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to fetch subscription history: user_id={user_id}, error={e}")
        return {"success": False, "error": "Failed to fetch user history"}

    try:
        summary = build_credit_summary(records, has_ever_had_subscription)
    except Exception as e:
        logger.exception(f"Unexpected error building credits summary: user_id={user_id}")
        return {"success": False, "error": str(e) or "Internal server error"}

    logger.debug(
        f"Credits summary: user_id={user_id}, credits={summary['credits']}, "
        f"status={summary['membershipStatus']}"
    )
    return {"success": True, "data": summary}
