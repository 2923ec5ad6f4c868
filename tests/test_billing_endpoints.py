"""
Integration tests for the billing HTTP endpoints.
"""
import json
import time
import httpx
import pytest
from datetime import datetime
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core import config
from app.core.auth_dependency import get_db
from app.core.plans import get_polar_products
from app.core.security import create_access_token
from app.db.base import Base
from app.db.models.user import User
from app.db.models.user_credit import UserCredit
from app.payments.paypal_provider import PayPalProvider
from app.payments.provider import CancellationResult, PaymentProvider
from app.payments.registry import get_payment_providers, get_paypal_provider
from app.payments.webhook_signature import generate_webhook_signature
from app.services.notification_outbox import get_notification_dispatcher


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

TEST_SECRET = "test-jwt-secret"
WEBHOOK_SECRET = "whsec_endpoint_test"


class FakePayPal(PaymentProvider):
    name = "paypal"

    def __init__(self):
        self.calls = []

    def cancel_subscription(self, subscription_id, reason="User requested cancellation"):
        self.calls.append(subscription_id)
        return CancellationResult(success=True, provider=self.name)


def override_get_db():
    """Override get_db dependency for testing."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def paypal():
    return FakePayPal()


@pytest.fixture
def dispatched():
    return []


@pytest.fixture
def client(monkeypatch, paypal, dispatched):
    monkeypatch.setattr(config, "SECRET_KEY", TEST_SECRET)
    monkeypatch.setattr(config, "POLAR_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(config, "POLAR_SERVER", "sandbox")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_providers] = lambda: {"paypal": paypal}
    app.dependency_overrides[get_notification_dispatcher] = lambda: (lambda: dispatched.append(True))

    Base.metadata.create_all(bind=test_engine)
    yield TestClient(app)
    Base.metadata.drop_all(bind=test_engine)
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def test_user(client, db_session):
    user = User(id="user-1", full_name="Test Creator", email="creator@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def auth_headers(test_user):
    token = create_access_token({"sub": test_user.id, "aud": "authenticated"}, secret_key=TEST_SECRET)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# GET /credits
# ---------------------------------------------------------------------------

def test_credits_requires_authentication(client):
    response = client.get("/credits")

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["error"] == "User not authenticated"


def test_credits_rejects_forged_token(client, test_user):
    token = create_access_token({"sub": test_user.id}, secret_key="someone-else")

    response = client.get("/credits", headers={"Authorization": f"Bearer {token}"})

    assert response.json()["error"] == "User not authenticated"


def test_credits_for_new_user(client, auth_headers):
    response = client.get("/credits", headers=auth_headers)

    body = response.json()
    assert body["success"] is True
    assert body["data"]["credits"] == 0
    assert body["data"]["membershipStatus"] == "inactive"
    assert body["data"]["planType"] == "none"


def test_credits_summary(client, auth_headers, db_session, test_user):
    db_session.add(UserCredit(user_id=test_user.id, credits=150, status="active", plan_type="monthly",
                              membership="pro", subscription_id="I-1", payment_provider="paypal",
                              expires_at=datetime(2025, 2, 10, 14, 0)))
    db_session.commit()

    data = client.get("/credits", headers=auth_headers).json()["data"]

    assert data["credits"] == 150
    assert data["membershipStatus"] == "active"
    assert data["subscription_id"] == "I-1"
    assert data["expires_at"] == "2025-02-10T14:00:00+00:00"
    assert data["hasEverHadSubscription"] is True


# ---------------------------------------------------------------------------
# POST /subscriptions/cancel
# ---------------------------------------------------------------------------

def test_cancel_requires_authentication(client, paypal):
    response = client.post("/subscriptions/cancel", json={"subscriptionId": "I-1"})

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "User not authenticated"}
    assert paypal.calls == []


def test_cancel_unknown_subscription(client, auth_headers, paypal):
    response = client.post("/subscriptions/cancel", json={"subscriptionId": "I-404"}, headers=auth_headers)

    assert response.json() == {"success": False, "error": "Subscription not found"}
    assert paypal.calls == []


def test_cancel_subscription(client, auth_headers, db_session, test_user, paypal):
    record = UserCredit(user_id=test_user.id, credits=150, status="active", plan_type="monthly",
                        membership="pro", subscription_id="I-1", created_at=datetime(2024, 11, 5, 9, 30))
    db_session.add(record)
    db_session.commit()

    response = client.post("/subscriptions/cancel", json={"subscriptionId": "I-1", "reason": "Pausing"},
                           headers=auth_headers)

    body = response.json()
    assert body["success"] is True
    assert body["provider"] == "paypal"
    assert body["expiresAt"].endswith("09:30:00+00:00")
    assert "error" not in body
    assert paypal.calls == ["I-1"]
    db_session.refresh(record)
    assert record.subscription_status_canceled is True


# ---------------------------------------------------------------------------
# POST /api/paypal-subscription
# ---------------------------------------------------------------------------

PAYPAL_BODY = {"subscriptionID": "I-NEW", "price": 39.9, "membership": "pro", "planType": "monthly"}


def test_paypal_subscription_requires_authentication(client):
    response = client.post("/api/paypal-subscription", json=PAYPAL_BODY)

    assert response.status_code == 401
    assert response.json() == {"error": "User not authenticated"}


def test_paypal_subscription_requires_profile(client):
    token = create_access_token({"sub": "no-profile"}, secret_key=TEST_SECRET)

    response = client.post("/api/paypal-subscription", json=PAYPAL_BODY,
                           headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json() == {"error": "Error to find the profile details of the user"}


def test_paypal_subscription_grants_credits(client, auth_headers, db_session, test_user, dispatched):
    db_session.add(UserCredit(user_id=test_user.id, credits=40, status="active", plan_type="monthly",
                              membership="saver", subscription_id="I-OLD"))
    db_session.commit()

    response = client.post("/api/paypal-subscription", json=PAYPAL_BODY, headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert dispatched == [True]

    data = client.get("/credits", headers=auth_headers).json()["data"]
    assert data["credits"] == 190
    assert data["subscription_id"] == "I-NEW"
    assert data["payment_provider"] == "paypal"


def test_paypal_subscription_conflict_for_foreign_subscription(client, auth_headers, db_session):
    db_session.add(User(id="user-2", full_name="Other", email="other@example.com"))
    db_session.add(UserCredit(user_id="user-2", credits=150, status="active", plan_type="monthly",
                              membership="pro", subscription_id="I-NEW", payment_provider="paypal"))
    db_session.commit()

    response = client.post("/api/paypal-subscription", json=PAYPAL_BODY, headers=auth_headers)

    assert response.status_code == 409


def test_paypal_subscription_validates_body(client, auth_headers):
    response = client.post("/api/paypal-subscription", json={"price": 10}, headers=auth_headers)
    assert response.status_code == 422


# ---------------------------------------------------------------------------
# POST /api/paypal/orders, /api/paypal/subscriptions
# ---------------------------------------------------------------------------

@pytest.fixture
def paypal_api():
    """Real PayPal adapter against a mocked PayPal REST API."""
    requests = []

    def handler(request):
        requests.append(request)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token"})
        if request.url.path == "/v2/checkout/orders":
            return httpx.Response(201, json={"id": "ORDER-1", "status": "CREATED"})
        return httpx.Response(201, json={"id": "I-CREATED", "status": "APPROVAL_PENDING"})

    provider = PayPalProvider(
        client_id="client",
        client_secret="secret",
        base_url="https://api-m.sandbox.paypal.com",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    app.dependency_overrides[get_paypal_provider] = lambda: provider
    return requests


def test_create_order_requires_authentication(client, paypal_api):
    response = client.post("/api/paypal/orders", json={"price": 29.9, "description": "60 Credits"})

    assert response.status_code == 401
    assert paypal_api == []


def test_create_order(client, auth_headers, paypal_api):
    response = client.post("/api/paypal/orders", json={"price": 29.9, "description": "60 Credits"},
                           headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, "id": "ORDER-1"}


def test_create_order_invalid_price(client, auth_headers, paypal_api):
    response = client.post("/api/paypal/orders", json={"price": 0, "description": "60 Credits"},
                           headers=auth_headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid price or description"}
    assert paypal_api == []


def test_create_subscription_checkout(client, auth_headers, paypal_api, monkeypatch):
    monkeypatch.setattr(config, "PAYPAL_ENVIRONMENT", "sandbox")

    response = client.post("/api/paypal/subscriptions", json={"price": 39.9, "description": "Pro Plan"},
                           headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, "id": "I-CREATED"}
    assert json.loads(paypal_api[-1].content)["plan_id"] == "P-4SR48308US546525GNDNZJOI"


def test_create_subscription_checkout_unknown_plan(client, auth_headers, paypal_api):
    response = client.post("/api/paypal/subscriptions", json={"price": 12.5, "description": "Mystery"},
                           headers=auth_headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid price, description, or plan ID"}


# ---------------------------------------------------------------------------
# POST /api/polar/webhooks
# ---------------------------------------------------------------------------

def post_webhook(client, event, secret=WEBHOOK_SECRET):
    body = json.dumps(event).encode("utf-8")
    timestamp = str(int(time.time()))
    signature = generate_webhook_signature(secret, "msg_1", timestamp, body)
    return client.post(
        "/api/polar/webhooks",
        content=body,
        headers={
            "content-type": "application/json",
            "webhook-id": "msg_1",
            "webhook-timestamp": timestamp,
            "webhook-signature": f"v1,{signature}",
        },
    )


def test_webhook_rejects_bad_signature(client, test_user):
    response = post_webhook(client, {"type": "checkout.updated", "data": {}}, secret="whsec_wrong")
    assert response.status_code == 403


def test_webhook_grants_credit_pack(client, test_user, auth_headers, dispatched):
    event = {"type": "checkout.updated", "data": {
        "id": "chk_pack",
        "status": "succeeded",
        "product_id": get_polar_products("sandbox")["credits_120"].id,
        "customer_id": "cus_1",
        "metadata": {"userId": test_user.id},
    }}

    response = post_webhook(client, event)

    assert response.status_code == 202
    assert response.json() == {"received": True}
    assert dispatched == [True]
    data = client.get("/credits", headers=auth_headers).json()["data"]
    assert data["credits"] == 120
    assert data["payment_provider"] == "polar"


def test_webhook_acknowledges_unhandled_event(client, dispatched):
    response = post_webhook(client, {"type": "customer.updated", "data": {"id": "cus_1"}})

    assert response.status_code == 202
    assert dispatched == []


@pytest.mark.parametrize("data", [
    "not-an-object",
    {"id": "chk_bad", "status": "succeeded", "metadata": "user-1"},
])
def test_webhook_malformed_event_returns_structured_error(client, test_user, dispatched, data):
    response = post_webhook(client, {"type": "checkout.updated", "data": data})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process webhook"}
    assert dispatched == []


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["database"] == "connected"
