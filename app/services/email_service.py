"""
Transactional email delivery through Resend.

Renders the purchase confirmation mails (one per membership tier plus the
add-on credits mail) and hands them to Resend.
"""
import html
import logging
from typing import Any, Dict, Optional, Tuple

import resend

from app.core import config

logger = logging.getLogger(__name__)

TIER_NAMES = {
    "saver": "Saver",
    "pro": "Pro",
    "super": "Super",
}


class EmailNotConfiguredError(RuntimeError):
    """Raised when no Resend API key is available."""


def render_purchase_confirmation(payload: Dict[str, Any]) -> Tuple[str, str]:
    """
    Build subject and HTML body for a purchase confirmation.

    Args:
        payload: creator_name, credits, membership, is_subscription

    Returns:
        (subject, html_body)
    """
    name = html.escape(payload.get("creator_name") or "Creator")
    credits = int(payload.get("credits") or 0)
    membership = payload.get("membership") or ""
    dashboard_url = html.escape(payload.get("dashboard_url") or config.DASHBOARD_URL)

    if payload.get("is_subscription", True) and membership in TIER_NAMES:
        tier = TIER_NAMES[membership]
        subject = f"Welcome to Genpire {tier}"
        intro = (
            f"Your Genpire {tier} subscription is active and "
            f"<strong>{credits} credits</strong> have been added to your account."
        )
    else:
        subject = "Your Genpire credits are ready"
        intro = f"<strong>{credits} credits</strong> have been added to your Genpire account."

    html_body = f"""
    <h2>Hi {name},</h2>
    <p>{intro}</p>
    <p>Use them to turn your next product idea into visuals and a full tech pack.</p>
    <p><a href="{dashboard_url}">Open your dashboard</a></p>
    <hr>
    <p style="font-size: 12px; color: #666;">
        You are receiving this email because of a purchase on genpire.com.
    </p>
    """
    return subject, html_body


class ResendEmailSender:
    """Sends outbox notifications as Resend emails."""

    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None):
        self.api_key = api_key if api_key is not None else config.RESEND_API_KEY
        self.from_email = from_email or config.EMAIL_FROM

    def send(self, kind: str, recipient: str, payload: Dict[str, Any]) -> None:
        """
        Deliver one notification.

        Raises:
            EmailNotConfiguredError: RESEND_API_KEY missing
            Exception: whatever Resend raises; the outbox records it and retries
        """
        if not self.api_key:
            raise EmailNotConfiguredError("RESEND_API_KEY not configured")

        subject, html_body = render_purchase_confirmation(payload)

        resend.api_key = self.api_key
        resend.Emails.send({
            "from": self.from_email,
            "to": recipient,
            "subject": subject,
            "html": html_body,
        })
        logger.info(f"Email sent: kind={kind}, subject={subject!r}")
