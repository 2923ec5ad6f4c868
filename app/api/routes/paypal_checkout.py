"""
PayPal checkout endpoints.

The PayPal JS button calls these to obtain the order or subscription id it
asks the buyer to approve.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.core.auth_dependency import get_current_user_id
from app.payments.paypal_provider import (
    INVALID_ORDER_ERROR,
    INVALID_SUBSCRIPTION_ERROR,
    PayPalProvider,
)
from app.payments.provider import CONFIGURATION_ERROR, CheckoutResult
from app.payments.registry import get_paypal_provider
from app.schemas.billing import BillingErrorResponse, PayPalCheckoutRequest, PayPalCheckoutResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/paypal", tags=["Billing"])

ERROR_RESPONSES = {
    400: {"model": BillingErrorResponse, "description": "Invalid price or description"},
    401: {"model": BillingErrorResponse, "description": "User not authenticated"},
    500: {"model": BillingErrorResponse, "description": "PayPal is not configured"},
    502: {"model": BillingErrorResponse, "description": "PayPal rejected the request"},
}


def _checkout_response(result: CheckoutResult):
    if result.success:
        return {"success": True, "id": result.id}

    if result.error in (INVALID_ORDER_ERROR, INVALID_SUBSCRIPTION_ERROR):
        code = status.HTTP_400_BAD_REQUEST
    elif result.error == CONFIGURATION_ERROR:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return JSONResponse(status_code=code, content={"error": result.error})


def _unauthenticated():
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "User not authenticated"})


@router.post("/orders", response_model=PayPalCheckoutResponse, responses=ERROR_RESPONSES)
def create_paypal_order(
    request: PayPalCheckoutRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    paypal: PayPalProvider = Depends(get_paypal_provider),
):
    """Create a one-time PayPal order for a credit pack."""
    if not user_id:
        return _unauthenticated()
    logger.info(f"Creating PayPal order: user_id={user_id}, price={request.price}")
    return _checkout_response(paypal.create_order(request.price, request.description))


@router.post("/subscriptions", response_model=PayPalCheckoutResponse, responses=ERROR_RESPONSES)
def create_paypal_subscription_checkout(
    request: PayPalCheckoutRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    paypal: PayPalProvider = Depends(get_paypal_provider),
):
    """Create a PayPal billing subscription for the plan sold at the given price."""
    if not user_id:
        return _unauthenticated()
    logger.info(f"Creating PayPal subscription: user_id={user_id}, price={request.price}")
    return _checkout_response(paypal.create_subscription(request.price, request.description))
