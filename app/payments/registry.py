"""
Registry of configured payment provider clients.

Each provider client is built on first use and reused afterwards; handlers
receive the mapping through get_payment_providers() so tests can swap in fakes.
"""
import logging
from typing import Dict

from app.db.models.user_credit import PROVIDER_PAYPAL, PROVIDER_POLAR
from app.payments.paypal_provider import PayPalProvider
from app.payments.polar_provider import PolarProvider
from app.payments.provider import PaymentProvider

logger = logging.getLogger(__name__)

PROVIDER_FACTORIES = {
    PROVIDER_POLAR: PolarProvider,
    PROVIDER_PAYPAL: PayPalProvider,
}

_providers: Dict[str, PaymentProvider] = {}


def get_payment_provider(name: str) -> PaymentProvider:
    """Return the shared client for a provider, creating it on first use."""
    if name not in PROVIDER_FACTORIES:
        raise ValueError(f"Unsupported payment provider: {name}")
    if name not in _providers:
        provider = PROVIDER_FACTORIES[name]()
        if not provider.is_configured():
            logger.warning(f"Payment provider '{name}' is not configured - cancellations will fail")
        _providers[name] = provider
    return _providers[name]


def get_payment_providers() -> Dict[str, PaymentProvider]:
    """FastAPI dependency: every supported provider keyed by name."""
    return {name: get_payment_provider(name) for name in PROVIDER_FACTORIES}


def get_paypal_provider() -> PayPalProvider:
    """FastAPI dependency: the PayPal client used to start checkouts."""
    return get_payment_provider(PROVIDER_PAYPAL)


def reset_payment_providers() -> None:
    """Close and forget cached clients (application shutdown)."""
    for provider in _providers.values():
        provider.close()
    _providers.clear()
