"""
Tests for the PayPal and Polar adapters (HTTP mocked with httpx.MockTransport).
"""
import json
from datetime import datetime, timezone

import httpx

from app.core import config
from app.payments.paypal_provider import PayPalProvider
from app.payments.polar_provider import PolarProvider
from app.payments.provider import CONFIGURATION_ERROR

PAYPAL_BASE = "https://api-m.sandbox.paypal.com"


def paypal_provider(handler):
    return PayPalProvider(
        client_id="client",
        client_secret="secret",
        base_url=PAYPAL_BASE,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def polar_provider(handler, access_token="polar_at_test"):
    return PolarProvider(
        access_token=access_token,
        server="sandbox",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_paypal_cancel_success():
    seen = []

    def handler(request):
        seen.append(request)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token", "token_type": "Bearer"})
        return httpx.Response(204)

    result = paypal_provider(handler).cancel_subscription("I-123", "Too expensive")

    assert result.success is True
    assert result.provider == "paypal"
    assert result.period_end is None

    token_request, cancel_request = seen
    assert token_request.method == "POST"
    assert token_request.headers["authorization"].startswith("Basic ")
    assert b"grant_type=client_credentials" in token_request.content
    assert cancel_request.url == f"{PAYPAL_BASE}/v1/billing/subscriptions/I-123/cancel"
    assert cancel_request.headers["authorization"] == "Bearer A21-token"
    assert json.loads(cancel_request.content) == {"reason": "Too expensive"}


def test_paypal_token_failure():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(401, json={"error": "invalid_client"})

    result = paypal_provider(handler).cancel_subscription("I-123")

    assert result.success is False
    assert result.error == "Failed to authenticate with PayPal"
    assert calls == ["/v1/oauth2/token"]


def test_paypal_cancel_rejected():
    def handler(request):
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token"})
        return httpx.Response(422, json={"name": "UNPROCESSABLE_ENTITY"})

    result = paypal_provider(handler).cancel_subscription("I-123")

    assert result.success is False
    assert result.error == "Failed to cancel PayPal subscription"


def test_paypal_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = paypal_provider(handler).cancel_subscription("I-123")

    assert result.success is False
    assert result.error == "Server error cancelling subscription"


def test_paypal_missing_configuration_makes_no_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(204)

    provider = PayPalProvider(
        client_id="",
        client_secret="",
        base_url="",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    result = provider.cancel_subscription("I-123")

    assert result.success is False
    assert result.error == CONFIGURATION_ERROR
    assert calls == []


def test_polar_cancel_at_period_end():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={
            "id": "sub_123",
            "cancel_at_period_end": True,
            "current_period_end": "2025-02-05T09:30:00Z",
        })

    result = polar_provider(handler).cancel_subscription("sub_123")

    assert result.success is True
    assert result.provider == "polar"
    assert result.period_end == datetime(2025, 2, 5, 9, 30)

    request = seen[0]
    assert request.method == "PATCH"
    assert request.url == "https://sandbox-api.polar.sh/v1/subscriptions/sub_123"
    assert request.headers["authorization"] == "Bearer polar_at_test"
    assert json.loads(request.content) == {"cancel_at_period_end": True}


def test_polar_cancel_rejected():
    def handler(request):
        return httpx.Response(404, json={"error": "ResourceNotFound"})

    result = polar_provider(handler).cancel_subscription("sub_missing")

    assert result.success is False
    assert result.error == "Failed to cancel Polar subscription"


def test_polar_missing_token():
    def handler(request):
        raise AssertionError("no request expected")

    result = polar_provider(handler, access_token="").cancel_subscription("sub_123")

    assert result.success is False
    assert result.error == CONFIGURATION_ERROR


def paypal_checkout_handler(seen, created_id, path):
    def handler(request):
        seen.append(request)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token"})
        assert request.url.path == path
        return httpx.Response(201, json={"id": created_id, "status": "CREATED"})
    return handler


def test_paypal_create_order():
    seen = []
    provider = paypal_provider(paypal_checkout_handler(seen, "5O190127TN364715T", "/v2/checkout/orders"))

    result = provider.create_order(29.9, "60 Credits")

    assert result.success is True
    assert result.id == "5O190127TN364715T"

    order_request = seen[1]
    assert order_request.method == "POST"
    assert order_request.headers["authorization"] == "Bearer A21-token"
    assert json.loads(order_request.content) == {
        "intent": "CAPTURE",
        "purchase_units": [
            {"description": "60 Credits", "amount": {"currency_code": "USD", "value": "29.90"}}
        ],
        "application_context": {"user_action": "PAY_NOW"},
    }


def test_paypal_create_order_rejects_invalid_input_without_requests():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    provider = paypal_provider(handler)

    for price, description in [(0, "60 Credits"), (-5, "60 Credits"), (None, "60 Credits"), (29.9, "")]:
        result = provider.create_order(price, description)
        assert result.success is False
        assert result.error == "Invalid price or description"
    assert calls == []


def test_paypal_create_order_rejected():
    def handler(request):
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token"})
        return httpx.Response(422, json={"name": "UNPROCESSABLE_ENTITY"})

    result = paypal_provider(handler).create_order(29.9, "60 Credits")

    assert result.success is False
    assert result.error == "Failed to create PayPal order"


def test_paypal_create_subscription(monkeypatch):
    monkeypatch.setattr(config, "PAYPAL_ENVIRONMENT", "sandbox")
    monkeypatch.setattr(config, "SITE_URL", "https://www.genpire.com")
    seen = []
    provider = paypal_provider(paypal_checkout_handler(seen, "I-BW452GLLEP1G", "/v1/billing/subscriptions"))

    result = provider.create_subscription(39.9, "Pro Plan", now=datetime(2025, 1, 10, 14, 0, tzinfo=timezone.utc))

    assert result.success is True
    assert result.id == "I-BW452GLLEP1G"

    subscription_request = seen[1]
    assert subscription_request.headers["prefer"] == "return=representation"
    assert subscription_request.headers["paypal-request-id"].startswith("SUBSCRIPTION-")
    body = json.loads(subscription_request.content)
    assert body["plan_id"] == "P-4SR48308US546525GNDNZJOI"
    assert body["start_time"] == "2025-01-10T14:01:00Z"
    assert body["application_context"]["user_action"] == "SUBSCRIBE_NOW"
    assert body["application_context"]["return_url"] == "https://www.genpire.com"


def test_paypal_create_subscription_unknown_price_makes_no_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    result = paypal_provider(handler).create_subscription(12.5, "Mystery Plan")

    assert result.success is False
    assert result.error == "Invalid price, description, or plan ID"
    assert calls == []


def test_paypal_create_subscription_token_failure():
    def handler(request):
        return httpx.Response(401, json={"error": "invalid_client"})

    result = paypal_provider(handler).create_subscription(39.9, "Pro Plan")

    assert result.success is False
    assert result.error == "Failed to authenticate with PayPal"


def test_paypal_create_subscription_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = paypal_provider(handler).create_subscription(39.9, "Pro Plan")

    assert result.success is False
    assert result.error == "Server error creating subscription"


def test_paypal_checkout_missing_configuration():
    provider = PayPalProvider(
        client_id="",
        client_secret="",
        base_url="",
        http_client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500))),
    )

    assert provider.create_order(29.9, "60 Credits").error == CONFIGURATION_ERROR
    assert provider.create_subscription(39.9, "Pro Plan").error == CONFIGURATION_ERROR
