"""
Subscription management endpoints.
"""
import logging
from typing import Dict, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_current_user_id, get_db
from app.payments.provider import PaymentProvider
from app.payments.registry import get_payment_providers
from app.schemas.billing import CancelSubscriptionRequest, CancelSubscriptionResponse
from app.services.subscription_service import cancel_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.post(
    "/cancel",
    response_model=CancelSubscriptionResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
def cancel_user_subscription(
    request: CancelSubscriptionRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    providers: Dict[str, PaymentProvider] = Depends(get_payment_providers),
):
    """
    Cancel one of the authenticated user's subscriptions at period end.

    The provider that owns the subscription is called first; the local
    record is then flagged and given its final expiry date.
    """
    return cancel_subscription(
        db,
        user_id,
        request.subscriptionId,
        reason=request.reason,
        providers=providers,
    )
