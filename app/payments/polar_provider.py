"""
Polar provider implementation.
"""
import logging
from typing import Optional

import httpx

from app.core import config
from app.db.models.user_credit import PROVIDER_POLAR
from app.payments.provider import (
    CONFIGURATION_ERROR,
    DEFAULT_CANCEL_REASON,
    CancellationResult,
    PaymentProvider,
)
from app.services.billing_periods import to_naive_utc

logger = logging.getLogger(__name__)

POLAR_API_URLS = {
    "sandbox": "https://sandbox-api.polar.sh",
    "production": "https://api.polar.sh",
}


class PolarProvider(PaymentProvider):
    """
    Cancels Polar subscriptions at period end.

    Uses the subscription update endpoint with cancel_at_period_end so the
    customer keeps access until the paid period runs out (Polar then emits
    subscription.canceled rather than subscription.revoked).
    """

    name = PROVIDER_POLAR

    def __init__(
        self,
        access_token: Optional[str] = None,
        server: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        self.access_token = access_token if access_token is not None else config.POLAR_ACCESS_TOKEN
        self.server = (server or config.POLAR_SERVER or "sandbox").lower()
        self.base_url = POLAR_API_URLS.get(self.server, POLAR_API_URLS["sandbox"])
        self.http_client = http_client or httpx.Client(
            timeout=timeout or config.PROVIDER_TIMEOUT_SECONDS
        )

    def is_configured(self) -> bool:
        return bool(self.access_token)

    def cancel_subscription(self, subscription_id: str, reason: str = DEFAULT_CANCEL_REASON) -> CancellationResult:
        if not self.is_configured():
            logger.error("Missing POLAR_ACCESS_TOKEN")
            return CancellationResult(success=False, provider=self.name, error=CONFIGURATION_ERROR)

        try:
            response = self.http_client.patch(
                f"{self.base_url}/v1/subscriptions/{subscription_id}",
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Accept": "application/json",
                },
                json={"cancel_at_period_end": True},
            )
            response.raise_for_status()
            payload = response.json()
            period_end = to_naive_utc(payload.get("current_period_end"))
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Polar rejected cancellation of {subscription_id}: "
                f"status={e.response.status_code}, body={e.response.text[:500]}"
            )
            return CancellationResult(
                success=False, provider=self.name, error="Failed to cancel Polar subscription"
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error cancelling Polar subscription {subscription_id}: {e}")
            return CancellationResult(
                success=False, provider=self.name, error="Failed to cancel Polar subscription"
            )

        logger.info(f"Polar subscription set to cancel at period end: subscription_id={subscription_id}, period_end={period_end}")
        return CancellationResult(success=True, provider=self.name, period_end=period_end)

    def close(self) -> None:
        self.http_client.close()
