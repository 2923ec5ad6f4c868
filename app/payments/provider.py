"""
Payment provider interface for abstracting subscription billing backends.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

DEFAULT_CANCEL_REASON = "User requested cancellation"
CONFIGURATION_ERROR = "Server configuration error"


@dataclass
class CancellationResult:
    """Standardized result of a provider-side cancellation."""
    success: bool
    provider: str
    error: Optional[str] = None
    period_end: Optional[datetime] = None


@dataclass
class CheckoutResult:
    """Result of starting a checkout: the provider-side order or subscription id."""
    success: bool
    provider: str
    id: Optional[str] = None
    error: Optional[str] = None


class PaymentProvider(ABC):
    """Abstract base class for payment providers."""

    name: str = ""

    @abstractmethod
    def cancel_subscription(self, subscription_id: str, reason: str = DEFAULT_CANCEL_REASON) -> CancellationResult:
        """
        Cancel a subscription at the provider.

        Implementations never raise for provider or network failures; they
        return a failed result carrying a user-presentable message.

        Args:
            subscription_id: Provider subscription reference
            reason: Free-text reason forwarded where the provider supports it

        Returns:
            CancellationResult, with period_end set when the provider reports it
        """
        pass

    def is_configured(self) -> bool:
        """Whether credentials for this provider are present."""
        return True

    def close(self) -> None:
        """Release pooled connections."""
        pass
