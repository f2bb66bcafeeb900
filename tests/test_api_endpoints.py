#!/usr/bin/env python3
"""
HTTP API Endpoint Tests for TermiVoxed Billing

Tests the REST endpoints the dashboard uses, through FastAPI's TestClient with
the in-memory Firestore and fake Razorpay client behind them. Authentication is
overridden to a signed-in "user_1" unless a test says otherwise.
"""

import json
from datetime import timedelta

import pytest
from razorpay.errors import BadRequestError

from cloud_functions.middleware import auth as auth_middleware
from cloud_functions.middleware.auth import get_current_user
from subscription.signatures import compute_signature, order_payment_signature
from tests.conftest import FIXED_NOW, KEY_ID, KEY_SECRET, WEBHOOK_SECRET


# ============================================================================
# HEALTH AND PLANS
# ============================================================================

class TestPublicEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_plans(self, client):
        response = client.get("/plans")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["plans"]["pro"]["yearly"]["amount"] == 399600
        assert body["plans"]["enterprise"]["monthly"]["amount"] == 0

    def test_plans_without_token(self, app, client):
        app.dependency_overrides.clear()
        assert client.get("/plans").status_code == 200

    async def test_health_async(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200


# ============================================================================
# AUTHENTICATION
# ============================================================================

class TestAuthentication:
    """Tests for Firebase ID token checks"""

    @pytest.mark.parametrize("method,path", [
        ("post", "/createOrder"),
        ("post", "/verifyPayment"),
        ("post", "/createSubscription"),
        ("get", "/getSubscriptionStatus"),
        ("post", "/cancelSubscription"),
        ("post", "/deleteAccount"),
        ("get", "/exportUserData"),
    ])
    def test_missing_token(self, app, client, method, path):
        app.dependency_overrides.clear()
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Unauthorized"}
        assert response.headers["www-authenticate"] == "Bearer"

    def test_invalid_token(self, app, client, monkeypatch):
        app.dependency_overrides.clear()
        monkeypatch.setattr(auth_middleware, "verify_firebase_token", lambda token: None)

        response = client.get("/getSubscriptionStatus", headers={"Authorization": "Bearer expired"})

        assert response.status_code == 401

    def test_valid_token(self, app, client, seed_user, monkeypatch):
        app.dependency_overrides.pop(get_current_user)
        seed_user("user_7", plan="pro", planStatus="active", subscription_expires_at=FIXED_NOW + timedelta(days=3))
        monkeypatch.setattr(
            auth_middleware,
            "verify_firebase_token",
            lambda token: {"uid": "user_7", "email": "user_7@example.com"} if token == "good" else None,
        )

        response = client.get("/getSubscriptionStatus", headers={"Authorization": "Bearer good"})

        assert response.status_code == 200
        assert response.json()["plan"] == "pro"


# ============================================================================
# ERROR SHAPES
# ============================================================================

class TestErrorResponses:
    def test_wrong_method(self, client):
        response = client.get("/createOrder")
        assert response.status_code == 405
        assert response.json()["success"] is False

    def test_unknown_route(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Not Found"}

    def test_malformed_json(self, client, seed_user):
        seed_user("user_1")
        response = client.post(
            "/createOrder",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request body")

    def test_billing_error(self, client, seed_user):
        seed_user("user_1")
        response = client.post("/createOrder", json={"planId": "gold", "billingPeriod": "monthly"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid plan"}

    def test_unexpected_error_message_passed_through(self, client, store, monkeypatch):
        def broken(uid):
            raise RuntimeError("firestore unavailable")

        monkeypatch.setattr(store, "get_user", broken)

        response = client.get("/getSubscriptionStatus")

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "firestore unavailable"}

    def test_error_outside_service_call_keeps_json_shape(self, app, monkeypatch):
        """Test that a failure inside the auth dependency still answers {success: false}"""
        from fastapi.testclient import TestClient

        def unreachable_key_server(token):
            raise RuntimeError("Failed to fetch public key certificates")

        app.dependency_overrides.clear()
        monkeypatch.setattr(auth_middleware, "verify_firebase_token", unreachable_key_server)
        client = TestClient(app, raise_server_exceptions=False)

        response = client.get("/getSubscriptionStatus", headers={"Authorization": "Bearer token"})

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {"success": False, "error": "Failed to fetch public key certificates"}

    def test_gateway_error(self, client, seed_user, razorpay_client):
        seed_user("user_1")
        razorpay_client.order.errors.append(BadRequestError("The amount must be atleast INR 1.00"))

        response = client.post("/createOrder", json={"planId": "pro", "billingPeriod": "monthly"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "The amount must be atleast INR 1.00"}

    def test_cors_preflight_dev_origin(self, client):
        response = client.options(
            "/createOrder",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Authorization, Content-Type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


# ============================================================================
# CHECKOUT
# ============================================================================

class TestCheckoutEndpoints:
    def test_create_order(self, client, seed_user):
        seed_user("user_1")

        response = client.post("/createOrder", json={"planId": "individual", "billingPeriod": "monthly"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["orderId"].startswith("order_")
        assert body["amount"] == 19900
        assert body["currency"] == "INR"
        assert body["keyId"] == KEY_ID

    def test_create_order_enterprise(self, client, seed_user):
        seed_user("user_1")
        response = client.post("/createOrder", json={"planId": "enterprise", "billingPeriod": "yearly"})
        assert response.status_code == 400
        assert response.json()["error"] == "Enterprise plan requires custom pricing. Please contact sales."

    def test_verify_payment_missing_fields(self, client):
        response = client.post("/verifyPayment", json={"razorpay_order_id": "order_1"})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing payment details"

    def test_verify_payment_bad_signature(self, client, seed_user, seed_order):
        seed_user("user_1")
        seed_order()
        response = client.post("/verifyPayment", json={
            "razorpay_order_id": "order_test_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": "forged",
        })
        assert response.status_code == 400
        assert response.json()["error"] == "Payment verification failed"

    def test_verify_payment_other_users_order(self, client, seed_user, seed_order):
        seed_user("user_1")
        seed_order("order_x", "user_2")
        response = client.post("/verifyPayment", json={
            "razorpay_order_id": "order_x",
            "razorpay_payment_id": "pay_x",
            "razorpay_signature": order_payment_signature("order_x", "pay_x", KEY_SECRET),
        })
        assert response.status_code == 403

    def test_create_subscription(self, client, seed_user):
        seed_user("user_1")

        response = client.post("/createSubscription", json={"planId": "individual", "billingPeriod": "monthly"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["subscriptionId"].startswith("sub_")
        assert body["shortUrl"].endswith(body["subscriptionId"])

    def test_create_subscription_not_configured(self, client, seed_user):
        seed_user("user_1")
        response = client.post("/createSubscription", json={"planId": "pro", "billingPeriod": "yearly"})
        assert response.status_code == 400
        assert response.json()["error"] == "Subscription plan not configured. Use one-time payment instead."

    def test_cancel_subscription(self, client, seed_user):
        seed_user("user_1", planStatus="active", razorpay_subscription_id="sub_live")
        response = client.post("/cancelSubscription")
        assert response.status_code == 200
        assert "retain access" in response.json()["message"]

    def test_cancel_without_subscription(self, client, seed_user):
        seed_user("user_1")
        response = client.post("/cancelSubscription")
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "No active subscription found"}


# ============================================================================
# WEBHOOK
# ============================================================================

class TestWebhookEndpoint:
    """The webhook answers in plain text and needs no Firebase token"""

    def _post(self, client, payload, signature=None, event_id=None):
        body = json.dumps(payload).encode()
        headers = {"Content-Type": "application/json"}
        headers["X-Razorpay-Signature"] = signature or compute_signature(WEBHOOK_SECRET, body)
        if event_id:
            headers["X-Razorpay-Event-Id"] = event_id
        return client.post("/razorpayWebhook", content=body, headers=headers)

    def test_acknowledges_plain_text(self, app, client):
        app.dependency_overrides.clear()
        response = self._post(client, {"event": "order.paid", "payload": {}})
        assert response.status_code == 200
        assert response.text == "OK"
        assert response.headers["content-type"].startswith("text/plain")

    def test_invalid_signature(self, client):
        response = self._post(client, {"event": "payment.captured"}, signature="0" * 64)
        assert response.status_code == 400
        assert response.text == "Invalid signature"

    def test_missing_signature(self, client):
        response = client.post("/razorpayWebhook", content=b"{}")
        assert response.status_code == 400
        assert response.text == "Missing signature"

    def test_duplicate_delivery(self, client):
        payload = {"event": "payment.failed", "payload": {"payment": {"entity": {"id": "pay_1", "notes": []}}}}
        assert self._post(client, payload, event_id="evt_9").text == "OK"
        assert self._post(client, payload, event_id="evt_9").text == "OK - Already processed"

    def test_handler_failure_is_500(self, client, store, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(store, "get_user", broken)
        payload = {
            "event": "subscription.cancelled",
            "payload": {"subscription": {"entity": {"id": "sub_1", "notes": {"firebase_uid": "user_1"}}}},
        }

        response = self._post(client, payload)

        assert response.status_code == 500
        assert response.text == "Webhook processing failed"


# ============================================================================
# ACCOUNT
# ============================================================================

class TestAccountEndpoints:
    def test_export(self, client, seed_user):
        seed_user("user_1", plan="individual")
        response = client.get("/exportUserData")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["userId"] == "user_1"
        assert body["data"]["profile"]["plan"] == "individual"

    def test_delete(self, client, seed_user, db, deleted_auth_users):
        seed_user("user_1")
        response = client.post("/deleteAccount")
        assert response.status_code == 200
        assert response.json()["message"] == "Your account and all associated data have been permanently deleted."
        assert db.data("users/user_1") is None
        assert deleted_auth_users == ["user_1"]


# ============================================================================
# END TO END
# ============================================================================

class TestOneTimePurchaseFlow:
    def test_order_verify_status(self, client, seed_user, db):
        seed_user("user_1")

        order = client.post("/createOrder", json={"planId": "individual", "billingPeriod": "monthly"}).json()
        payment_id = "pay_e2e"
        verify = client.post("/verifyPayment", json={
            "razorpay_order_id": order["orderId"],
            "razorpay_payment_id": payment_id,
            "razorpay_signature": order_payment_signature(order["orderId"], payment_id, KEY_SECRET),
        })
        status = client.get("/getSubscriptionStatus")

        assert verify.status_code == 200
        assert verify.json()["message"] == "Successfully upgraded to Individual plan!"
        assert status.json() == {
            "success": True,
            "plan": "individual",
            "status": "active",
            "expiresAt": "2024-02-15T10:00:00+00:00",
            "billingPeriod": "monthly",
            "planStatus": "active",
            "cancelledAt": None,
        }
        assert db.data(f"orders/{order['orderId']}")["status"] == "paid"

    def test_webhook_capture_then_verify(self, client, seed_user, db):
        """Test that the capture webhook racing ahead of the browser does not block verification"""
        seed_user("user_1")
        order = client.post("/createOrder", json={"planId": "pro", "billingPeriod": "yearly"}).json()

        payload = {
            "event": "payment.captured",
            "payload": {"payment": {"entity": {
                "id": "pay_race",
                "order_id": order["orderId"],
                "amount": order["amount"],
                "currency": "INR",
                "notes": {"uid": "user_1", "planId": "pro", "billingPeriod": "yearly"},
            }}},
        }
        body = json.dumps(payload).encode()
        client.post("/razorpayWebhook", content=body, headers={"X-Razorpay-Signature": compute_signature(WEBHOOK_SECRET, body)})
        assert db.data(f"orders/{order['orderId']}")["status"] == "captured"

        verify = client.post("/verifyPayment", json={
            "razorpay_order_id": order["orderId"],
            "razorpay_payment_id": "pay_race",
            "razorpay_signature": order_payment_signature(order["orderId"], "pay_race", KEY_SECRET),
        })

        assert verify.status_code == 200
        assert db.data(f"orders/{order['orderId']}")["status"] == "paid"
        assert client.get("/getSubscriptionStatus").json()["expiresAt"] == "2025-01-15T10:00:00+00:00"
