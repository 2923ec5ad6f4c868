"""
PayPal subscription purchase endpoint.

The PayPal button posts here once the buyer approves a subscription.
"""
import logging
from typing import Callable, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_current_user_id, get_db
from app.db.models.user import User
from app.schemas.billing import BillingErrorResponse, PayPalSubscriptionRequest, PayPalSubscriptionResponse
from app.services.notification_outbox import get_notification_dispatcher
from app.services.purchase_service import DUPLICATE_SUBSCRIPTION_ERROR, record_paypal_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Billing"])


@router.post(
    "/paypal-subscription",
    response_model=PayPalSubscriptionResponse,
    status_code=status.HTTP_200_OK,
    responses={
        401: {"model": BillingErrorResponse, "description": "Unauthenticated or no profile"},
        409: {"model": BillingErrorResponse, "description": "Subscription belongs to another user"},
        500: {"model": BillingErrorResponse, "description": "Credits could not be stored"},
    },
)
def create_paypal_subscription(
    request: PayPalSubscriptionRequest,
    background_tasks: BackgroundTasks,
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    dispatch_notifications: Callable[[], None] = Depends(get_notification_dispatcher),
):
    """
    Grant credits for an approved PayPal subscription.

    - 401 when unauthenticated or the profile row is missing
    - 409 when the subscription id is already recorded for another user
    - 500 when the credits could not be stored
    """
    if not user_id:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "User not authenticated"})

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.warning(f"PayPal subscription for user without profile: user_id={user_id}")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Error to find the profile details of the user"},
        )

    result = record_paypal_subscription(
        db,
        user,
        request.subscriptionID,
        request.price,
        request.membership,
        request.planType,
    )
    if not result["success"]:
        code = (
            status.HTTP_409_CONFLICT
            if result["error"] == DUPLICATE_SUBSCRIPTION_ERROR
            else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        return JSONResponse(status_code=code, content={"error": result["error"]})

    if not result["data"]["duplicate"]:
        background_tasks.add_task(dispatch_notifications)

    return {"success": True}
