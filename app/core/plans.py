"""
Plan and product configuration for credit purchases.

Single source of truth for how many credits each membership tier grants,
for both the PayPal subscription flow and the Polar product catalog.
"""
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from app.core import config

# Plan types
PLAN_MONTHLY = "monthly"
PLAN_YEARLY = "yearly"
PLAN_ONE_TIME = "one_time"
SUBSCRIPTION_PLAN_TYPES = (PLAN_MONTHLY, PLAN_YEARLY)

# Membership tiers
SUBSCRIPTION_MEMBERSHIPS = ("saver", "pro", "super")
ADD_ON_MEMBERSHIP = "add_on"

# PayPal subscription credits
SAVER_CREDITS = 75
PRO_CREDITS = 150
PRO_EDU_CREDITS = 250

# One-time 25% bonus for users flagged with an offer
OFFER_MULTIPLIER = Decimal("1.25")

EDU_EMAIL_PATTERN = re.compile(r"@[\w.-]*\.edu(\.[\w]+)?$", re.IGNORECASE)


def is_edu_email(email: Optional[str]) -> bool:
    """Check whether an email address belongs to an .edu domain (incl. country .edu.xx)."""
    if not email:
        return False
    return bool(EDU_EMAIL_PATTERN.search(email))


def calculate_credits_with_offer(base_credits: int, has_offer: bool) -> int:
    """Apply the offer bonus, rounding half up like the pricing page does."""
    if not has_offer:
        return base_credits
    return int((Decimal(base_credits) * OFFER_MULTIPLIER).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def paypal_plan_credits(membership: str, email: Optional[str], has_offer: bool) -> int:
    """
    Credits granted by a PayPal subscription purchase.

    Saver grants 75. Every other tier gets the pro default of 150, raised to
    250 for .edu addresses unless the user is redeeming an offer. The offer
    bonus is applied last.
    """
    if membership == "saver":
        base = SAVER_CREDITS
    elif is_edu_email(email) and not has_offer:
        base = PRO_EDU_CREDITS
    else:
        base = PRO_CREDITS
    return calculate_credits_with_offer(base, has_offer)


# PayPal billing plan ids by checkout price: (sandbox, live)
_PAYPAL_PLAN_IDS: Dict[str, tuple] = {
    "19.9": ("P-666303557S974712WNDNZI2I", "P-1UP815479U477693UNDOQMHY"),   # saver monthly
    "39.9": ("P-4SR48308US546525GNDNZJOI", "P-9K6176931R800784VNDOQMZQ"),   # pro monthly
    "178": ("P-0D918129TL046734MNDNZKPA", "P-5TK03293UD298615ENDOQNFA"),    # saver yearly
    "358": ("P-8WV94625R0248794XNDNZK7I", "P-41S964089P8080520NDOQNPQ"),    # pro yearly
}


def price_key(price: float) -> str:
    """Canonical price string used by the plan map: 39.90 -> "39.9", 178.0 -> "178"."""
    return format(Decimal(str(price)).normalize(), "f")


def get_paypal_plan_id(price: Optional[float], environment: Optional[str] = None) -> Optional[str]:
    """PayPal billing plan id for a subscription price, or None when no plan has that price."""
    if price is None:
        return None
    ids = _PAYPAL_PLAN_IDS.get(price_key(price))
    if not ids:
        return None
    environment = (environment or config.PAYPAL_ENVIRONMENT or "live").lower()
    return ids[0] if environment == "sandbox" else ids[1]


@dataclass(frozen=True)
class PolarProduct:
    """A product sold through Polar checkout."""
    key: str
    id: str
    name: str
    price: float
    credits: int
    plan_type: str
    membership: str

    @property
    def is_subscription(self) -> bool:
        return self.plan_type in SUBSCRIPTION_PLAN_TYPES


# Product ids per Polar environment: (sandbox, production)
_POLAR_PRODUCT_IDS: Dict[str, tuple] = {
    "saver_monthly": ("b7cc08d1-e0a2-45ce-99b3-4fbd4e0a87bf", "47cfb7c1-8bd2-448a-8ab5-b5305886309e"),
    "pro_monthly": ("3501a064-d5bc-43a4-917b-2386ab6a53b8", "70d8fc9e-c6d5-4f0b-9ee4-eeb9b20e2705"),
    "super_monthly": ("", "41144f26-4157-4759-a1d8-cec439cec2cd"),
    "saver_yearly": ("2dbe49d6-55d3-46bf-8ec3-9e6e58e2a0e6", "7320f436-3c5b-405b-aee5-a4219fc274e7"),
    "pro_yearly": ("42dd0dbf-646d-42a9-b9d4-2ee4f16ceb22", "6cf57730-a2d9-4b19-b460-751c3918a647"),
    "super_yearly": ("", "649b8aac-2e80-4519-b86f-3fda352ac171"),
    "credits_30": ("5c515e41-85fa-426d-b666-d3f11142e3ce", ""),
    "credits_60": ("a3b1c383-0dd0-4968-9bd9-66289e1f1935", ""),
    "credits_120": ("a877da46-4916-4802-bcf2-6a9717fe0519", ""),
    "credits_250": ("011a818b-5168-4ad6-bb6c-57c1ad5cc1f5", ""),
}

# key -> (name, price, credits, plan_type, membership)
_POLAR_PRODUCT_DETAILS: Dict[str, tuple] = {
    "saver_monthly": ("Saver Plan", 19.9, 75, PLAN_MONTHLY, "saver"),
    "pro_monthly": ("Pro Plan", 39.9, 200, PLAN_MONTHLY, "pro"),
    "super_monthly": ("Super Plan", 99.9, 650, PLAN_MONTHLY, "super"),
    "saver_yearly": ("Saver Plan (Yearly)", 178.0, 75, PLAN_YEARLY, "saver"),
    "pro_yearly": ("Pro Plan (Yearly)", 358.0, 200, PLAN_YEARLY, "pro"),
    "super_yearly": ("Super Plan (Yearly)", 899.0, 650, PLAN_YEARLY, "super"),
    "credits_30": ("30 Credits", 14.9, 30, PLAN_ONE_TIME, ADD_ON_MEMBERSHIP),
    "credits_60": ("60 Credits", 29.9, 60, PLAN_ONE_TIME, ADD_ON_MEMBERSHIP),
    "credits_120": ("120 Credits", 49.9, 120, PLAN_ONE_TIME, ADD_ON_MEMBERSHIP),
    "credits_250": ("250 Credits", 99.9, 250, PLAN_ONE_TIME, ADD_ON_MEMBERSHIP),
}


def get_polar_products(server: Optional[str] = None) -> Dict[str, PolarProduct]:
    """Build the product catalog for a Polar environment ("sandbox" or "production")."""
    server = (server or config.POLAR_SERVER or "sandbox").lower()
    index = 0 if server == "sandbox" else 1
    products = {}
    for key, (name, price, credits, plan_type, membership) in _POLAR_PRODUCT_DETAILS.items():
        products[key] = PolarProduct(
            key=key,
            id=_POLAR_PRODUCT_IDS[key][index],
            name=name,
            price=price,
            credits=credits,
            plan_type=plan_type,
            membership=membership,
        )
    return products


def get_polar_product_by_id(product_id: Optional[str], server: Optional[str] = None) -> Optional[PolarProduct]:
    """Look up a catalog product by its Polar product id."""
    if not product_id:
        return None
    for product in get_polar_products(server).values():
        if product.id and product.id == product_id:
            return product
    return None
