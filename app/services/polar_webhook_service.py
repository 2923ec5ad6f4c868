"""
Polar webhook event handlers.

Each handler receives the event's `data` object and a session, applies the
change to the credit ledger and commits. Deliveries can repeat, so handlers
that grant credits or write audit rows check the checkout/order id first.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from sqlalchemy.orm import Session

from app.core.logging_config import sanitize_log_data
from app.core.plans import PolarProduct, calculate_credits_with_offer, get_polar_product_by_id
from app.db.base import utcnow
from app.db.models.user import User
from app.db.models.user_credit import UserCredit, PROVIDER_POLAR, STATUS_ACTIVE, STATUS_EXPIRED
from app.services.billing_periods import period_end_for_plan, to_naive_utc
from app.services.notification_outbox import enqueue_purchase_confirmation
from app.services.payment_service import add_payment, payment_exists
from app.services.purchase_service import carry_over_active_records, consume_offer
from app.services.subscription_service import find_subscription_record, mark_subscription_canceled

logger = logging.getLogger(__name__)

PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_UPGRADE = "UPGRADE"
PAYMENT_DOWNGRADE = "DOWNGRADE"
PAYMENT_RENEWAL = "RENEWAL"
PAYMENT_UPGRADE_PAYMENT = "UPGRADE_PAYMENT"
PAYMENT_SUBSCRIPTION_PAYMENT = "SUBSCRIPTION_PAYMENT"


def _get(data: Dict[str, Any], *keys: str, default=None):
    """First present value among snake_case / camelCase spellings of a field."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return default


def _period_end(data: Dict[str, Any], product: PolarProduct, now: datetime) -> Optional[datetime]:
    """Polar's current period end when reported, otherwise one plan period from now."""
    reported = to_naive_utc(_get(data, "current_period_end", "currentPeriodEnd"))
    if reported is not None:
        return reported
    return period_end_for_plan(product.plan_type, now)


def _checkout_already_processed(db: Session, checkout_id: str) -> bool:
    if payment_exists(db, checkout_id):
        return True
    return (
        db.query(UserCredit.id)
        .filter(UserCredit.polar_checkout_id == checkout_id)
        .first()
        is not None
    )


def _grant_purchase(
    db: Session,
    user: User,
    product: PolarProduct,
    has_offer: bool,
    reference: str,
    now: datetime,
    subscription_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    checkout_id: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    payer_name: Optional[str] = None,
    payer_email: Optional[str] = None,
) -> int:
    """
    Stage the credit record, audit row, offer consumption and confirmation mail
    for a paid Polar product. Subscriptions absorb the user's active balances;
    one-time packs are added alongside them. Returns the credits granted.
    """
    credits = calculate_credits_with_offer(product.credits, has_offer)
    carried = 0
    if product.is_subscription:
        carried = carry_over_active_records(db, user.id, now)
        if expires_at is None:
            expires_at = period_end_for_plan(product.plan_type, now)
    else:
        expires_at = None

    db.add(UserCredit(
        user_id=user.id,
        credits=credits + carried,
        status=STATUS_ACTIVE,
        plan_type=product.plan_type,
        membership=product.membership,
        subscription_id=subscription_id,
        payment_provider=PROVIDER_POLAR,
        polar_customer_id=customer_id,
        polar_checkout_id=checkout_id,
        created_at=now,
        updated_at=now,
        expires_at=expires_at,
    ))

    add_payment(
        db,
        user_id=user.id,
        quantity=credits,
        price=product.price,
        payment_status=PAYMENT_COMPLETED,
        payer_id=customer_id,
        payer_name=payer_name or user.full_name,
        payer_email=payer_email or user.email,
        external_reference=reference,
    )

    if has_offer:
        consume_offer(db, user, product.membership, product.price)

    enqueue_purchase_confirmation(db, user, product.membership, credits, is_subscription=product.is_subscription)

    logger.info(
        f"Polar: credits added for user {user.id}: {credits} credits "
        f"({product.membership} {product.plan_type}), {carried} carried over"
    )
    return credits


def handle_checkout_updated(data: Dict[str, Any], db: Session, now: Optional[datetime] = None) -> None:
    """
    Handle checkout.updated.

    Only succeeded checkouts grant credits. Subscription rows are created
    without a subscription id; subscription.active links them afterwards.
    """
    if data.get("status") != "succeeded":
        logger.info(f"checkout.updated: checkout {data.get('id')} not succeeded ({data.get('status')}), skipping")
        return

    now = now or utcnow()
    checkout_id = data.get("id")
    metadata = data.get("metadata") or {}
    user_id = _get(metadata, "userId", "user_id") or _get(
        data, "external_customer_id", "customer_external_id", "externalCustomerId", "customerExternalId"
    )
    if not checkout_id or not user_id:
        logger.error(f"checkout.updated: no user id for checkout {checkout_id}")
        return

    if _checkout_already_processed(db, checkout_id):
        logger.info(f"checkout.updated: checkout {checkout_id} already processed, skipping duplicate")
        return

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.error(f"checkout.updated: user not found: {user_id}")
        return

    product = get_polar_product_by_id(_get(data, "product_id", "productId"))
    if not product:
        logger.error(f"checkout.updated: product not in catalog: {_get(data, 'product_id', 'productId')}")
        return

    has_offer = str(metadata.get("hasOffer", "")).lower() == "true" or bool(user.offers)
    _grant_purchase(
        db,
        user,
        product,
        has_offer,
        reference=checkout_id,
        now=now,
        subscription_id=None if product.is_subscription else _get(data, "subscription_id", "subscriptionId"),
        customer_id=_get(data, "customer_id", "customerId"),
        checkout_id=checkout_id,
        payer_name=_get(data, "customer_name", "customerName"),
        payer_email=_get(data, "customer_email", "customerEmail"),
    )
    db.commit()


def handle_subscription_active(data: Dict[str, Any], db: Session, now: Optional[datetime] = None) -> None:
    """
    Handle subscription.active.

    Fires on first activation and on every renewal. A subscription already
    linked to a record is a renewal; otherwise the row created by the checkout
    is linked, or a record is created if the checkout was never seen.
    """
    now = now or utcnow()
    subscription_id = data.get("id")
    product = get_polar_product_by_id(_get(data, "product_id", "productId"))
    if not subscription_id or not product:
        logger.error(
            f"subscription.active: missing subscription or unknown product "
            f"({subscription_id}, {_get(data, 'product_id', 'productId')})"
        )
        return

    existing = find_subscription_record(db, subscription_id)
    if existing:
        _renew_subscription(data, db, existing, product, now)
        return

    metadata = data.get("metadata") or {}
    customer = data.get("customer") or {}
    user_id = _get(metadata, "userId", "user_id") or _get(customer, "external_id", "externalId")
    checkout_id = _get(data, "checkout_id", "checkoutId")

    record = None
    if user_id:
        record = (
            db.query(UserCredit)
            .filter(
                UserCredit.user_id == user_id,
                UserCredit.payment_provider == PROVIDER_POLAR,
                UserCredit.subscription_id.is_(None),
                UserCredit.plan_type == product.plan_type,
                UserCredit.status == STATUS_ACTIVE,
            )
            .order_by(UserCredit.created_at.desc(), UserCredit.id.desc())
            .first()
        )
    if record is None and checkout_id:
        record = (
            db.query(UserCredit)
            .filter(UserCredit.polar_checkout_id == checkout_id, UserCredit.subscription_id.is_(None))
            .first()
        )

    if record is not None:
        record.subscription_id = subscription_id
        record.polar_customer_id = record.polar_customer_id or _get(data, "customer_id", "customerId")
        reported_end = to_naive_utc(_get(data, "current_period_end", "currentPeriodEnd"))
        if reported_end is not None:
            record.expires_at = reported_end
        record.updated_at = now
        db.commit()
        logger.info(f"Polar: linked subscription {subscription_id} to user_credits {record.id}")
        return

    if not user_id:
        logger.error(f"subscription.active: cannot create record for {subscription_id}, no user id")
        return
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.error(f"subscription.active: user not found: {user_id}")
        return

    reference = checkout_id or subscription_id
    if payment_exists(db, reference):
        logger.info(f"subscription.active: payment {reference} already recorded, skipping")
        return

    _grant_purchase(
        db,
        user,
        product,
        bool(user.offers),
        reference=reference,
        now=now,
        subscription_id=subscription_id,
        customer_id=_get(data, "customer_id", "customerId"),
        checkout_id=checkout_id,
        expires_at=_period_end(data, product, now),
        payer_name=_get(customer, "name"),
        payer_email=_get(customer, "email"),
    )
    db.commit()
    logger.info(f"Polar: created user_credits for user {user_id} with subscription {subscription_id}")


def _renew_subscription(
    data: Dict[str, Any],
    db: Session,
    existing: UserCredit,
    product: PolarProduct,
    now: datetime,
) -> None:
    if data.get("cancel_at_period_end") or data.get("cancelAtPeriodEnd"):
        logger.info(f"Polar: subscription {existing.subscription_id} cancels at period end, not a renewal")
        return

    user = db.query(User).filter(User.id == existing.user_id).first()
    credits = calculate_credits_with_offer(product.credits, bool(user and user.offers))
    expires_at = _period_end(data, product, now)

    # Expired rows stay expired
    updated = (
        db.query(UserCredit)
        .filter(UserCredit.subscription_id == existing.subscription_id, UserCredit.status == STATUS_ACTIVE)
        .update(
            {
                UserCredit.credits: credits,
                UserCredit.expires_at: expires_at,
                UserCredit.subscription_status_canceled: False,
                UserCredit.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if not updated:
        logger.warning(f"Polar: renewal for subscription {existing.subscription_id} has no active record")
        return
    logger.info(
        f"Polar: subscription renewed for user {existing.user_id}: {credits} credits, expires {expires_at}"
    )


def handle_subscription_updated(data: Dict[str, Any], db: Session, now: Optional[datetime] = None) -> None:
    """Handle subscription.updated: apply plan changes (upgrade/downgrade) and audit them."""
    now = now or utcnow()
    subscription_id = data.get("id")
    product = get_polar_product_by_id(_get(data, "product_id", "productId"))
    if not product:
        logger.error(f"subscription.updated: product not in catalog: {_get(data, 'product_id', 'productId')}")
        return

    record = find_subscription_record(db, subscription_id) if subscription_id else None
    if not record:
        logger.info(f"subscription.updated: no user_credits for subscription {subscription_id}")
        return

    if record.membership == product.membership and record.plan_type == product.plan_type:
        logger.debug(f"subscription.updated: no plan change for subscription {subscription_id}")
        return

    is_upgrade = product.credits > (record.credits or 0)
    expires_at = _period_end(data, product, now)
    previous_membership = record.membership

    db.query(UserCredit).filter(
        UserCredit.subscription_id == subscription_id,
        UserCredit.status == STATUS_ACTIVE,
    ).update(
        {
            UserCredit.membership: product.membership,
            UserCredit.plan_type: product.plan_type,
            UserCredit.credits: product.credits,
            UserCredit.expires_at: expires_at,
            UserCredit.updated_at: now,
        },
        synchronize_session=False,
    )

    user = db.query(User).filter(User.id == record.user_id).first()
    add_payment(
        db,
        user_id=record.user_id,
        quantity=product.credits,
        price=product.price,
        payment_status=PAYMENT_UPGRADE if is_upgrade else PAYMENT_DOWNGRADE,
        payer_id=_get(data, "customer_id", "customerId"),
        payer_name=user.full_name if user else None,
        payer_email=user.email if user else None,
        external_reference=f"plan_change_{subscription_id}_{int(now.timestamp())}",
    )
    db.commit()
    logger.info(
        f"Polar: subscription {subscription_id} changed {previous_membership} -> {product.membership} "
        f"({'upgrade' if is_upgrade else 'downgrade'}), expires {expires_at}"
    )


def handle_subscription_canceled(data: Dict[str, Any], db: Session, now: Optional[datetime] = None) -> None:
    """Handle subscription.canceled: flag the records and store Polar's end date."""
    subscription_id = data.get("id")
    if not subscription_id:
        logger.error("Polar subscription event without subscription id")
        return
    expires_at = to_naive_utc(_get(
        data,
        "current_period_end", "currentPeriodEnd",
        "ends_at", "endsAt",
        "cancel_at", "cancelAt",
    ))
    updated = mark_subscription_canceled(db, subscription_id, expires_at)
    logger.info(f"Polar: subscription {subscription_id} canceled ({updated} records), expires {expires_at or 'unchanged'}")


def handle_subscription_uncanceled(data: Dict[str, Any], db: Session, now: Optional[datetime] = None) -> None:
    subscription_id = data.get("id")
    if not subscription_id:
        logger.error("Polar subscription event without subscription id")
        return
    db.query(UserCredit).filter(UserCredit.subscription_id == subscription_id).update(
        {UserCredit.subscription_status_canceled: False, UserCredit.updated_at: now or utcnow()},
        synchronize_session=False,
    )
    db.commit()
    logger.info(f"Polar: subscription {subscription_id} uncanceled")


def handle_subscription_revoked(data: Dict[str, Any], db: Session, now: Optional[datetime] = None) -> None:
    """Handle subscription.revoked: access ends immediately."""
    subscription_id = data.get("id")
    if not subscription_id:
        logger.error("Polar subscription event without subscription id")
        return
    db.query(UserCredit).filter(UserCredit.subscription_id == subscription_id).update(
        {
            UserCredit.status: STATUS_EXPIRED,
            UserCredit.subscription_status_canceled: True,
            UserCredit.updated_at: now or utcnow(),
        },
        synchronize_session=False,
    )
    db.commit()
    logger.info(f"Polar: subscription {subscription_id} revoked")


def handle_order_paid(data: Dict[str, Any], db: Session, now: Optional[datetime] = None) -> None:
    """
    Handle order.paid.

    Audits subscription charges (renewals and plan changes). One-time
    purchases are granted through checkout.updated instead.
    """
    order_id = data.get("id")
    subscription_id = _get(data, "subscription_id", "subscriptionId")
    if not subscription_id:
        logger.debug(f"order.paid: order {order_id} has no subscription, handled by checkout")
        return
    if payment_exists(db, order_id):
        logger.info(f"order.paid: order {order_id} already recorded, skipping")
        return

    record = find_subscription_record(db, subscription_id)
    product = get_polar_product_by_id(_get(data, "product_id", "productId"))
    if not record or not product:
        logger.warning(f"order.paid: no record or product for subscription {subscription_id}, order {order_id}")
        return

    billing_reason = _get(data, "billing_reason", "billingReason")
    if billing_reason in ("subscription_update", "purchase"):
        payment_status = PAYMENT_UPGRADE_PAYMENT
    elif billing_reason == "subscription_cycle":
        payment_status = PAYMENT_RENEWAL
    else:
        payment_status = PAYMENT_SUBSCRIPTION_PAYMENT

    user = db.query(User).filter(User.id == record.user_id).first()
    add_payment(
        db,
        user_id=record.user_id,
        quantity=product.credits,
        price=product.price,
        payment_status=payment_status,
        payer_id=_get(data, "customer_id", "customerId"),
        payer_name=user.full_name if user else None,
        payer_email=user.email if user else None,
        external_reference=order_id,
    )
    db.commit()
    logger.info(f"Polar: recorded {payment_status} payment for order {order_id}")


def handle_refund_created(data: Dict[str, Any], db: Session, now: Optional[datetime] = None) -> None:
    # Refunds are reconciled manually; credits are left untouched
    logger.info(
        f"Polar: refund created for order {_get(data, 'order_id', 'orderId')}, amount {data.get('amount')}"
    )


EVENT_HANDLERS: Dict[str, Callable[..., None]] = {
    "checkout.updated": handle_checkout_updated,
    "subscription.active": handle_subscription_active,
    "subscription.updated": handle_subscription_updated,
    "subscription.canceled": handle_subscription_canceled,
    "subscription.uncanceled": handle_subscription_uncanceled,
    "subscription.revoked": handle_subscription_revoked,
    "order.paid": handle_order_paid,
    "refund.created": handle_refund_created,
}


def process_polar_event(event: Dict[str, Any], db: Session, now: Optional[datetime] = None) -> bool:
    """
    Dispatch a verified webhook event to its handler.

    Returns:
        True when a handler ran, False for event types that are only logged
    """
    event_type = event.get("type")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Polar webhook received: {event_type} (no handler)")
        return False

    logger.info(f"Polar webhook: {event_type}")
    logger.debug(f"Polar webhook payload: {sanitize_log_data(event.get('data') or {})}")
    handler(event.get("data") or {}, db, now)
    return True
