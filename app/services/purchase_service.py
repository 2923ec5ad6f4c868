"""
Purchase recording.

Turns a confirmed provider payment into credits: existing active balances are
carried over into the new record and their rows expired, the payment is
audited, a consumed offer is cleared and a confirmation email is queued.
Everything happens in a single transaction.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.core.plans import PLAN_MONTHLY, PLAN_YEARLY, SUBSCRIPTION_MEMBERSHIPS, paypal_plan_credits
from app.db.base import utcnow
from app.db.models.user import User
from app.db.models.user_credit import (
    UserCredit,
    PROVIDER_PAYPAL,
    STATUS_ACTIVE,
    STATUS_EXPIRED,
)
from app.services.billing_periods import period_end_for_plan, to_naive_utc
from app.services.notification_outbox import enqueue_purchase_confirmation
from app.services.payment_service import add_payment

logger = logging.getLogger(__name__)

SAVE_CREDITS_ERROR = "Failed to Save the credits in database"
DUPLICATE_SUBSCRIPTION_ERROR = "Subscription already belongs to another user"


def lock_active_records(db: Session, user_id: str) -> List[UserCredit]:
    """Active records of a user, row-locked until the surrounding transaction ends."""
    return (
        db.query(UserCredit)
        .filter(UserCredit.user_id == user_id, UserCredit.status == STATUS_ACTIVE)
        .order_by(UserCredit.created_at.asc(), UserCredit.id.asc())
        .with_for_update()
        .all()
    )


def carry_over_active_records(db: Session, user_id: str, now: Optional[datetime] = None) -> int:
    """
    Expire every active record of a user and return their summed balance.

    Does not commit; the caller inserts the record that receives the balance
    in the same transaction.
    """
    now = now or utcnow()
    carried = 0
    for record in lock_active_records(db, user_id):
        logger.debug(
            f"Carrying over record {record.id}: membership={record.membership}, credits={record.credits}"
        )
        carried += record.credits or 0
        record.status = STATUS_EXPIRED
        record.updated_at = now
    return carried


def consume_offer(db: Session, user: User, membership: Optional[str], price: Optional[float]) -> None:
    """Clear the one-time offer flag and remember what it was spent on (no commit)."""
    locked = db.query(User).filter(User.id == user.id).with_for_update().one()
    locked.offers = False
    locked.offer_plan_buy = membership
    locked.offer_price_buy = price


def record_paypal_subscription(
    db: Session,
    user: User,
    subscription_id: str,
    price: Optional[float],
    membership: str,
    plan_type: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Record an approved PayPal subscription for a user.

    A subscription id that is already recorded for the same user is
    acknowledged without granting credits again.

    Args:
        db: Database session
        user: Purchasing user (profile row)
        subscription_id: PayPal subscription id
        price: Price paid, stored on the audit row
        membership: saver | pro | super
        plan_type: monthly, anything else is billed yearly
        now: Clock override

    Returns:
        {"success": True, "data": {...}} or {"success": False, "error": "..."}
    """
    now = to_naive_utc(now) or utcnow()
    plan_type = PLAN_MONTHLY if plan_type == PLAN_MONTHLY else PLAN_YEARLY
    has_offer = bool(user.offers)
    plan_credits = paypal_plan_credits(membership, user.email, has_offer)

    try:
        existing = (
            db.query(UserCredit)
            .filter(UserCredit.subscription_id == subscription_id)
            .first()
        )
        if existing is not None:
            if existing.user_id != user.id:
                logger.warning(
                    f"PayPal subscription {subscription_id} already recorded for another user, "
                    f"requested_by={user.id}"
                )
                return {"success": False, "error": DUPLICATE_SUBSCRIPTION_ERROR}
            logger.info(f"PayPal subscription {subscription_id} already recorded for user {user.id}, skipping")
            return {
                "success": True,
                "data": {"credits": existing.credits, "carriedOver": 0, "duplicate": True},
            }

        carried = carry_over_active_records(db, user.id, now)
        total = plan_credits + carried

        db.add(UserCredit(
            user_id=user.id,
            credits=total,
            status=STATUS_ACTIVE,
            plan_type=plan_type,
            membership=membership,
            subscription_id=subscription_id,
            payment_provider=PROVIDER_PAYPAL,
            created_at=now,
            updated_at=now,
            expires_at=period_end_for_plan(plan_type, now),
        ))

        add_payment(
            db,
            user_id=user.id,
            quantity=plan_credits,
            price=price,
            payer_id=subscription_id,
            external_reference=f"paypal_{subscription_id}",
        )

        if has_offer:
            consume_offer(db, user, membership, price)

        if membership in SUBSCRIPTION_MEMBERSHIPS:
            enqueue_purchase_confirmation(db, user, membership, plan_credits, is_subscription=True)
        else:
            logger.info(f"No confirmation mail for membership '{membership}': user_id={user.id}")

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to record PayPal subscription: user_id={user.id}, subscription_id={subscription_id}, error={e}")
        return {"success": False, "error": SAVE_CREDITS_ERROR}
    except Exception:
        db.rollback()
        logger.exception(f"Unexpected error recording PayPal subscription: user_id={user.id}, subscription_id={subscription_id}")
        return {"success": False, "error": SAVE_CREDITS_ERROR}

    logger.info(
        f"{plan_type.capitalize()} subscription activated for user {user.id}: "
        f"{total} credits ({plan_credits} new, {carried} carried over)"
    )
    return {
        "success": True,
        "data": {"credits": total, "carriedOver": carried, "duplicate": False},
    }
