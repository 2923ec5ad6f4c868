"""
Subscription cancellation.

Cancels at the payment provider that owns the subscription, then mirrors the
cancellation on the local credit record. Already-paid access is kept: the
record stays active until its expiry.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.db.base import utcnow
from app.db.models.user_credit import UserCredit, PROVIDER_PAYPAL
from app.payments.provider import DEFAULT_CANCEL_REASON, PaymentProvider
from app.services.billing_periods import isoformat_utc, resolve_cancellation_expiry, to_naive_utc

logger = logging.getLogger(__name__)

LOCAL_UPDATE_WARNING = "Subscription cancelled but failed to update local record"


def find_subscription_record(db: Session, subscription_id: str) -> Optional[UserCredit]:
    """Newest credit record carrying a provider subscription id."""
    return (
        db.query(UserCredit)
        .filter(UserCredit.subscription_id == subscription_id)
        .order_by(UserCredit.created_at.desc(), UserCredit.id.desc())
        .first()
    )


def mark_subscription_canceled(
    db: Session,
    subscription_id: str,
    expires_at: Optional[datetime] = None,
) -> int:
    """Set the cancelled flag (and optionally the expiry) on every record of a subscription."""
    values = {
        UserCredit.subscription_status_canceled: True,
        UserCredit.updated_at: utcnow(),
    }
    if expires_at is not None:
        values[UserCredit.expires_at] = expires_at
    updated = (
        db.query(UserCredit)
        .filter(UserCredit.subscription_id == subscription_id)
        .update(values, synchronize_session=False)
    )
    db.commit()
    return updated


def cancel_subscription(
    db: Session,
    user_id: Optional[str],
    subscription_id: Optional[str],
    reason: Optional[str] = None,
    providers: Optional[Mapping[str, PaymentProvider]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Cancel one of the requesting user's subscriptions.

    Args:
        db: Database session
        user_id: Authenticated user id (None when anonymous)
        subscription_id: Provider subscription reference
        reason: Optional reason forwarded to PayPal
        providers: Provider clients keyed by name (defaults to the shared registry)
        now: Clock override

    Returns:
        {"success": bool, "error"?: str, "expiresAt"?: iso str, "provider"?: str}.
        A success may still carry "error" when only the local mirror update failed.
    """
    if not user_id:
        return {"success": False, "error": "User not authenticated"}
    if not subscription_id:
        return {"success": False, "error": "Subscription ID is required"}

    if providers is None:
        from app.payments.registry import get_payment_providers
        providers = get_payment_providers()

    now = to_naive_utc(now) or utcnow()

    try:
        record = find_subscription_record(db, subscription_id)
        if not record:
            logger.warning(f"Cancellation for unknown subscription: subscription_id={subscription_id}")
            return {"success": False, "error": "Subscription not found"}
        if record.user_id != user_id:
            # Same answer as an unknown id; other users' subscriptions stay invisible
            logger.warning(
                f"Cancellation refused, subscription owned by another user: "
                f"subscription_id={subscription_id}, requested_by={user_id}"
            )
            return {"success": False, "error": "Subscription not found"}

        provider_name = record.payment_provider or PROVIDER_PAYPAL
        provider = providers.get(provider_name)
        if provider is None:
            logger.error(f"No client for payment provider '{provider_name}'")
            return {"success": False, "error": f"Unsupported payment provider: {provider_name}"}

        logger.info(f"Cancelling subscription {subscription_id} via {provider_name}")
        result = provider.cancel_subscription(subscription_id, reason or DEFAULT_CANCEL_REASON)
        if not result.success:
            return {"success": False, "error": result.error, "provider": result.provider}

        expires_at = resolve_cancellation_expiry(record.plan_type, record.created_at, result.period_end, now)
        response = {
            "success": True,
            "provider": result.provider,
            "expiresAt": isoformat_utc(expires_at),
        }

        try:
            mark_subscription_canceled(db, subscription_id, expires_at)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Provider cancelled {subscription_id} but local update failed: {e}")
            response["error"] = LOCAL_UPDATE_WARNING
            return response

        logger.info(
            f"Subscription cancelled: user_id={user_id}, subscription_id={subscription_id}, "
            f"provider={provider_name}, expires_at={response['expiresAt']}"
        )
        return response

    except Exception as e:
        db.rollback()
        logger.exception(f"Unexpected error cancelling subscription {subscription_id}")
        return {"success": False, "error": str(e) or "Internal server error"}
