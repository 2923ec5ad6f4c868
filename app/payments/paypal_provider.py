"""
PayPal provider implementation (REST v1 billing, v2 checkout orders).
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from app.core import config
from app.core.plans import get_paypal_plan_id
from app.db.models.user_credit import PROVIDER_PAYPAL
from app.payments.provider import (
    CONFIGURATION_ERROR,
    DEFAULT_CANCEL_REASON,
    CancellationResult,
    CheckoutResult,
    PaymentProvider,
)

logger = logging.getLogger(__name__)

INVALID_ORDER_ERROR = "Invalid price or description"
INVALID_SUBSCRIPTION_ERROR = "Invalid price, description, or plan ID"


class PayPalProvider(PaymentProvider):
    """Creates orders and subscriptions and cancels subscriptions using client-credentials OAuth."""

    name = PROVIDER_PAYPAL

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        self.client_id = client_id if client_id is not None else config.PAYPAL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else config.PAYPAL_CLIENT_SECRET
        self.base_url = (base_url if base_url is not None else config.PAYPAL_API_BASE_URL or "").rstrip("/")
        self.http_client = http_client or httpx.Client(
            timeout=timeout or config.PROVIDER_TIMEOUT_SECONDS
        )

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.base_url)

    def get_access_token(self) -> Optional[str]:
        """Exchange client credentials for a bearer token; None on failure."""
        response = self.http_client.post(
            f"{self.base_url}/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data={"grant_type": "client_credentials"},
        )
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.is_error or not payload.get("access_token"):
            logger.error(
                f"Failed to get PayPal access token: status={response.status_code}, "
                f"error={payload.get('error')}"
            )
            return None
        return payload["access_token"]

    def cancel_subscription(self, subscription_id: str, reason: str = DEFAULT_CANCEL_REASON) -> CancellationResult:
        if not self.is_configured():
            logger.error("Missing PayPal credentials or base URL")
            return CancellationResult(success=False, provider=self.name, error=CONFIGURATION_ERROR)

        try:
            access_token = self.get_access_token()
            if not access_token:
                return CancellationResult(
                    success=False, provider=self.name, error="Failed to authenticate with PayPal"
                )

            response = self.http_client.post(
                f"{self.base_url}/v1/billing/subscriptions/{subscription_id}/cancel",
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                    "Prefer": "return=representation",
                },
                json={"reason": reason or DEFAULT_CANCEL_REASON},
            )
        except httpx.HTTPError as e:
            logger.error(f"Error cancelling PayPal subscription {subscription_id}: {e}")
            return CancellationResult(
                success=False, provider=self.name, error="Server error cancelling subscription"
            )

        # PayPal answers 204 No Content on success
        if not response.is_success and response.status_code != 204:
            logger.error(
                f"Failed to cancel PayPal subscription {subscription_id}: "
                f"status={response.status_code}, body={response.text[:500]}"
            )
            return CancellationResult(
                success=False, provider=self.name, error="Failed to cancel PayPal subscription"
            )

        logger.info(f"PayPal subscription cancelled: subscription_id={subscription_id}")
        return CancellationResult(success=True, provider=self.name)

    def _checkout_error(self, error: str) -> CheckoutResult:
        return CheckoutResult(success=False, provider=self.name, error=error)

    def _post_with_token(self, path: str, body: Dict[str, Any], headers: Optional[Dict[str, str]] = None):
        """
        POST a JSON body with a fresh access token.

        Returns:
            (response, None), or (None, error message) when authentication failed
        """
        access_token = self.get_access_token()
        if not access_token:
            return None, "Failed to authenticate with PayPal"
        response = self.http_client.post(
            f"{self.base_url}{path}",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {access_token}",
                **(headers or {}),
            },
            json=body,
        )
        return response, None

    @staticmethod
    def _created_id(response: httpx.Response) -> Optional[str]:
        try:
            payload = response.json()
        except ValueError:
            return None
        if response.is_error or not isinstance(payload, dict):
            return None
        return payload.get("id")

    def create_order(self, price: Optional[float], description: Optional[str]) -> CheckoutResult:
        """
        Create a one-time PayPal order (intent CAPTURE, USD) for the buyer to approve.

        Returns:
            CheckoutResult carrying the PayPal order id
        """
        if not price or price <= 0 or not description:
            return self._checkout_error(INVALID_ORDER_ERROR)
        if not self.is_configured():
            logger.error("Missing PayPal credentials or base URL")
            return self._checkout_error(CONFIGURATION_ERROR)

        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "description": description,
                    "amount": {"currency_code": "USD", "value": f"{price:.2f}"},
                }
            ],
            "application_context": {"user_action": "PAY_NOW"},
        }
        try:
            response, error = self._post_with_token("/v2/checkout/orders", body)
        except httpx.HTTPError as e:
            logger.error(f"Error creating PayPal order: {e}")
            return self._checkout_error("Server error creating payment")
        if error:
            return self._checkout_error(error)

        order_id = self._created_id(response)
        if not order_id:
            logger.error(
                f"Failed to create PayPal order: status={response.status_code}, body={response.text[:500]}"
            )
            return self._checkout_error("Failed to create PayPal order")

        logger.info(f"PayPal order created: order_id={order_id}, price={price:.2f}")
        return CheckoutResult(success=True, provider=self.name, id=order_id)

    def create_subscription(
        self,
        price: Optional[float],
        description: Optional[str],
        now: Optional[datetime] = None,
    ) -> CheckoutResult:
        """
        Create a PayPal billing subscription for the plan sold at `price`.

        The subscription starts one minute from now; the buyer approves it in
        the PayPal popup and the frontend then posts the id to
        /api/paypal-subscription.

        Returns:
            CheckoutResult carrying the PayPal subscription id
        """
        plan_id = get_paypal_plan_id(price)
        if not price or price <= 0 or not description or not plan_id:
            return self._checkout_error(INVALID_SUBSCRIPTION_ERROR)
        if not self.is_configured():
            logger.error("Missing PayPal credentials or base URL")
            return self._checkout_error(CONFIGURATION_ERROR)

        now = now or datetime.now(timezone.utc)
        start_time = (now + timedelta(minutes=1)).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = {
            "plan_id": plan_id,
            "start_time": start_time,
            "application_context": {
                "brand_name": "Genpire",
                "locale": "en-US",
                "shipping_preference": "NO_SHIPPING",
                "user_action": "SUBSCRIBE_NOW",
                "payment_method": {"payee_preferred": "IMMEDIATE_PAYMENT_REQUIRED"},
                "return_url": config.SITE_URL,
                "cancel_url": config.SITE_URL,
            },
        }
        headers = {
            "Accept": "application/json",
            "PayPal-Request-Id": f"SUBSCRIPTION-{uuid.uuid4()}",
            "Prefer": "return=representation",
        }
        try:
            response, error = self._post_with_token("/v1/billing/subscriptions", body, headers)
        except httpx.HTTPError as e:
            logger.error(f"Error creating PayPal subscription: {e}")
            return self._checkout_error("Server error creating subscription")
        if error:
            return self._checkout_error(error)

        subscription_id = self._created_id(response)
        if not subscription_id:
            logger.error(
                f"Failed to create PayPal subscription: plan_id={plan_id}, "
                f"status={response.status_code}, body={response.text[:500]}"
            )
            return self._checkout_error("Failed to create PayPal subscription")

        logger.info(f"PayPal subscription created: subscription_id={subscription_id}, plan_id={plan_id}")
        return CheckoutResult(success=True, provider=self.name, id=subscription_id)

    def close(self) -> None:
        self.http_client.close()
