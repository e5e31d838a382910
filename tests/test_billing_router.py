"""
Tests for the checkout and customer-portal endpoints.
"""

from unittest.mock import AsyncMock

import pytest
import stripe
from fastapi.testclient import TestClient

from billsync.config import settings
from billsync.main import create_app
from billsync.models import SubscriptionStatus
from billsync.routers.billing import get_billing_store, get_gateway
from billsync.services.stripe_gateway import StripeGateway

from stripe_fixtures import TEST_API_KEY, make_customer

CHECKOUT_URL = "https://checkout.stripe.test/c/cs_test_1"
PORTAL_URL = "https://billing.stripe.test/p/session/bps_1"


def _checkout_session(url=CHECKOUT_URL):
    return stripe.checkout.Session.construct_from(
        {"id": "cs_test_1", "object": "checkout.session", "url": url}, TEST_API_KEY
    )


def _portal_session():
    return stripe.billing_portal.Session.construct_from(
        {"id": "bps_1", "object": "billing_portal.session", "url": PORTAL_URL}, TEST_API_KEY
    )


@pytest.fixture
def gateway():
    gw = AsyncMock(spec=StripeGateway)
    gw.create_customer.return_value = make_customer("cus_new", "a@example.com")
    gw.create_checkout_session.return_value = _checkout_session()
    gw.create_billing_portal_session.return_value = _portal_session()
    return gw


@pytest.fixture
def app(store, gateway, monkeypatch):
    monkeypatch.setattr(settings, "stripe_price_id", "price_123")
    monkeypatch.setattr(settings, "billing_success_url", "https://app.test/billing/success")
    monkeypatch.setattr(settings, "billing_return_url", "https://app.test/billing")
    application = create_app()
    application.dependency_overrides[get_billing_store] = lambda: store
    application.dependency_overrides[get_gateway] = lambda: gateway
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


class TestCreateSubscription:
    def test_new_customer_gets_checkout_url(self, client, gateway, make_user):
        user = make_user("alice", "a@example.com")

        resp = client.post("/api/billing/subscriptions", json={"user_id": user.id})

        assert resp.status_code == 200
        assert resp.json() == {"checkout_session_url": CHECKOUT_URL}
        gateway.create_customer.assert_awaited_once_with("a@example.com")
        gateway.create_checkout_session.assert_awaited_once_with(
            customer_id="cus_new",
            price_id="price_123",
            client_reference_id="alice",
            success_url="https://app.test/billing/success",
        )

    def test_existing_customer_is_reused(self, client, gateway, store, make_user):
        user = make_user("alice", "a@example.com")
        store.create_billing_customer(user.id, "cus_existing")

        resp = client.post("/api/billing/subscriptions", json={"user_id": user.id})

        assert resp.status_code == 200
        gateway.create_customer.assert_not_called()
        assert gateway.create_checkout_session.await_args.kwargs["customer_id"] == "cus_existing"

    def test_unknown_user(self, client, gateway):
        resp = client.post("/api/billing/subscriptions", json={"user_id": 999})

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "BSY-API-001"
        gateway.create_checkout_session.assert_not_called()

    def test_missing_price_id(self, client, make_user, monkeypatch):
        monkeypatch.setattr(settings, "stripe_price_id", None)
        user = make_user("alice", "a@example.com")

        resp = client.post("/api/billing/subscriptions", json={"user_id": user.id})

        assert resp.status_code == 501
        assert resp.json()["error"]["code"] == "BSY-CFG-001"

    def test_stripe_not_configured(self, app, store, make_user):
        app.dependency_overrides[get_gateway] = lambda: None
        user = make_user("alice", "a@example.com")

        resp = TestClient(app).post("/api/billing/subscriptions", json={"user_id": user.id})

        assert resp.status_code == 501

    def test_stripe_error(self, client, gateway, make_user):
        gateway.create_checkout_session.side_effect = stripe.APIConnectionError("timeout")
        user = make_user("alice", "a@example.com")

        resp = client.post("/api/billing/subscriptions", json={"user_id": user.id})

        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "BSY-STR-001"

    def test_session_without_url(self, client, gateway, make_user):
        gateway.create_checkout_session.return_value = _checkout_session(url=None)
        user = make_user("alice", "a@example.com")

        resp = client.post("/api/billing/subscriptions", json={"user_id": user.id})

        assert resp.status_code == 502


class TestManageSubscription:
    @pytest.fixture
    def subscribed_user(self, store, make_user):
        user = make_user("alice", "a@example.com")
        customer = store.create_billing_customer(user.id, "cus_1")
        store.upsert_billing_subscription_by_stripe_subscription_id(
            customer.id, "sub_1", SubscriptionStatus.ACTIVE
        )
        return user

    def test_cancel_flow_for_single_active_subscription(self, client, gateway, subscribed_user):
        resp = client.post(
            "/api/billing/subscriptions/manage",
            json={"user_id": subscribed_user.id, "intent": "cancel"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"billing_portal_session_url": PORTAL_URL}
        kwargs = gateway.create_billing_portal_session.await_args.kwargs
        assert kwargs["customer_id"] == "cus_1"
        assert kwargs["return_url"] == "https://app.test/billing"
        assert kwargs["flow_data"]["type"] == "subscription_cancel"
        assert kwargs["flow_data"]["subscription_cancel"] == {"subscription": "sub_1"}
        assert kwargs["flow_data"]["after_completion"]["redirect"] == {
            "return_url": "https://app.test/billing"
        }

    def test_explicit_subscription_id(self, client, gateway, store, subscribed_user):
        sub = store.get_billing_subscription_by_stripe_subscription_id("sub_1")

        resp = client.post(
            "/api/billing/subscriptions/manage",
            json={"user_id": subscribed_user.id, "intent": "cancel", "subscription_id": sub.id},
        )

        assert resp.status_code == 200

    def test_unknown_intent_is_rejected(self, client, subscribed_user):
        resp = client.post(
            "/api/billing/subscriptions/manage",
            json={"user_id": subscribed_user.id, "intent": "upgrade"},
        )

        assert resp.status_code == 422

    def test_user_without_billing_customer(self, client, make_user):
        user = make_user("bob", "b@example.com")

        resp = client.post(
            "/api/billing/subscriptions/manage", json={"user_id": user.id, "intent": "cancel"}
        )

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "BSY-API-002"

    def test_several_active_subscriptions(self, client, store, subscribed_user):
        customer = store.get_billing_customer_by_user_id(subscribed_user.id)
        store.upsert_billing_subscription_by_stripe_subscription_id(
            customer.id, "sub_2", SubscriptionStatus.ACTIVE
        )

        resp = client.post(
            "/api/billing/subscriptions/manage",
            json={"user_id": subscribed_user.id, "intent": "cancel"},
        )

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "BSY-API-004"

    def test_no_active_subscription(self, client, store, subscribed_user):
        customer = store.get_billing_customer_by_user_id(subscribed_user.id)
        store.upsert_billing_subscription_by_stripe_subscription_id(
            customer.id, "sub_1", SubscriptionStatus.CANCELED
        )

        resp = client.post(
            "/api/billing/subscriptions/manage",
            json={"user_id": subscribed_user.id, "intent": "cancel"},
        )

        assert resp.json()["error"]["code"] == "BSY-API-005"

    def test_other_users_subscription_is_not_found(self, client, store, make_user, subscribed_user):
        other = make_user("bob", "b@example.com")
        store.create_billing_customer(other.id, "cus_2")
        sub = store.get_billing_subscription_by_stripe_subscription_id("sub_1")

        resp = client.post(
            "/api/billing/subscriptions/manage",
            json={"user_id": other.id, "intent": "cancel", "subscription_id": sub.id},
        )

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "BSY-API-003"
