"""
Payment audit trail.

One row per purchase or provider-side charge. Rows are informational; the
credit balance lives in user_credits.
"""
import logging
from typing import Optional
from sqlalchemy.orm import Session

from app.db.models.payment import Payment

logger = logging.getLogger(__name__)


def add_payment(
    db: Session,
    user_id: str,
    quantity: int,
    price: Optional[float],
    payment_status: str = "",
    payer_id: Optional[str] = None,
    payer_name: Optional[str] = None,
    payer_address: Optional[str] = None,
    payer_email: Optional[str] = None,
    currency: str = "USD",
    external_reference: Optional[str] = None,
) -> Payment:
    """Stage an audit row in the caller's transaction (no commit)."""
    payment = Payment(
        user_id=user_id,
        quantity=quantity,
        price=price,
        payment_status=payment_status,
        payer_id=payer_id or "",
        payer_name=payer_name or "",
        payer_address=payer_address or "",
        payer_email=payer_email or "",
        currency=currency,
        external_reference=external_reference,
    )
    db.add(payment)
    logger.info(
        f"Payment staged: user_id={user_id}, status={payment_status or '-'}, "
        f"quantity={quantity}, price={price}, reference={external_reference}"
    )
    return payment


def payment_exists(db: Session, external_reference: Optional[str]) -> bool:
    """Whether an audit row already exists for a provider checkout/order id."""
    if not external_reference:
        return False
    return (
        db.query(Payment.id)
        .filter(Payment.external_reference == external_reference)
        .first()
        is not None
    )
