"""
Polar webhook signature verification (Standard Webhooks scheme).

Polar signs `{webhook-id}.{webhook-timestamp}.{body}` with HMAC-SHA256 using
the raw webhook secret as key, and sends one or more space-separated
`v1,<base64 signature>` entries in the webhook-signature header.
"""
import base64
import hashlib
import hmac
import logging
import time
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 5 * 60


class WebhookVerificationError(Exception):
    """Raised when a webhook delivery cannot be authenticated."""


def generate_webhook_signature(secret: str, msg_id: str, timestamp: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 signature for one delivery."""
    signed = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(
    body: bytes,
    headers: Mapping[str, str],
    secret: Optional[str],
    now: Optional[float] = None,
) -> None:
    """
    Authenticate a Polar webhook delivery.

    Args:
        body: Raw request body, exactly as received
        headers: Request headers (case-insensitive mapping, e.g. starlette Headers)
        secret: POLAR_WEBHOOK_SECRET
        now: Unix time override

    Raises:
        WebhookVerificationError: missing secret/headers, stale timestamp, or no matching signature
    """
    if not secret:
        raise WebhookVerificationError("Webhook secret not configured")

    msg_id = headers.get("webhook-id")
    timestamp = headers.get("webhook-timestamp")
    signature_header = headers.get("webhook-signature")
    if not msg_id or not timestamp or not signature_header:
        raise WebhookVerificationError("Missing webhook signature headers")

    try:
        sent_at = int(timestamp)
    except ValueError:
        raise WebhookVerificationError("Invalid webhook timestamp")

    now = time.time() if now is None else now
    if abs(now - sent_at) > SIGNATURE_TOLERANCE_SECONDS:
        raise WebhookVerificationError("Webhook timestamp outside tolerance")

    expected = generate_webhook_signature(secret, msg_id, timestamp, body)
    for entry in signature_header.split():
        version, _, signature = entry.partition(",")
        if version == "v1" and hmac.compare_digest(signature, expected):
            return

    logger.warning(f"Invalid Polar webhook signature: webhook_id={msg_id}")
    raise WebhookVerificationError("No matching webhook signature")
