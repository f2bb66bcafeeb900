#!/usr/bin/env python3
"""
Pytest Configuration and Shared Fixtures

Provides shared fixtures and configuration for all tests. Firestore and the
Razorpay SDK are replaced by the in-memory fakes in tests/fakes.py, and time
is frozen at 2024-01-15 10:00 UTC.
"""

import pytest
import sys
import os
from datetime import datetime, timezone
from typing import Any, Dict, List

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Settings
from subscription.account_service import AccountService
from subscription.gateway import RazorpayGateway
from subscription.models import BillingConfig, BillingPeriod, PlanId
from subscription.order_service import OrderService
from subscription.payment_verification import PaymentVerificationService
from subscription.plans import build_plan_catalog
from subscription.store import FirestoreBillingStore
from subscription.subscription_service import SubscriptionService
from subscription.webhook_handler import WebhookHandler
from tests.fakes import FakeFirestore, FakeRazorpayClient


# ============================================================================
# ASYNCIO CONFIGURATION
# ============================================================================
# Note: pytest-asyncio is configured with asyncio_mode = "auto" in pyproject.toml
# The event loop is automatically managed per-function by default


KEY_ID = "rzp_test_1234567890"
KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"

FIXED_NOW = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)

RECURRING_PLAN_IDS = {
    (PlanId.INDIVIDUAL, BillingPeriod.MONTHLY): "plan_individual_monthly",
    (PlanId.INDIVIDUAL, BillingPeriod.YEARLY): "plan_individual_yearly",
    (PlanId.PRO, BillingPeriod.MONTHLY): "plan_pro_monthly",
    # Pro yearly deliberately left without a recurring plan
}


class Clock:
    """Mutable frozen clock shared by the services and the fake store"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ============================================================================
# CORE FIXTURES
# ============================================================================

@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def db(clock):
    return FakeFirestore(clock)


@pytest.fixture
def store(db):
    return FirestoreBillingStore(db)


@pytest.fixture
def razorpay_client():
    return FakeRazorpayClient()


@pytest.fixture
def gateway(razorpay_client):
    return RazorpayGateway(razorpay_client)


@pytest.fixture
def catalog():
    return build_plan_catalog(RECURRING_PLAN_IDS)


@pytest.fixture
def billing_config(catalog):
    return BillingConfig(
        key_id=KEY_ID,
        key_secret=KEY_SECRET,
        webhook_secret=WEBHOOK_SECRET,
        catalog=catalog,
    )


@pytest.fixture
def deleted_auth_users() -> List[str]:
    return []


@pytest.fixture
def order_service(billing_config, gateway, store, clock):
    return OrderService(billing_config, gateway, store, clock=clock)


@pytest.fixture
def subscription_service(billing_config, gateway, store, clock):
    return SubscriptionService(billing_config, gateway, store, clock=clock)


@pytest.fixture
def verification_service(billing_config, store, clock):
    return PaymentVerificationService(billing_config, store, clock=clock)


@pytest.fixture
def webhook_handler(billing_config, store, clock):
    return WebhookHandler(billing_config, store, clock=clock)


@pytest.fixture
def account_service(gateway, store, clock, deleted_auth_users):
    return AccountService(gateway, store, delete_auth_user=deleted_auth_users.append, clock=clock)


# ============================================================================
# SAMPLE DATA FIXTURES
# ============================================================================

@pytest.fixture
def seed_user(db):
    """Create users/{uid} with a profile and optional entitlement fields"""

    def _seed(uid: str = "user_1", **fields: Any) -> Dict[str, Any]:
        data = {
            "email": f"{uid}@example.com",
            "displayName": "Test User",
            **fields,
        }
        db.seed(f"users/{uid}", data)
        return data

    return _seed


@pytest.fixture
def seed_order(db):
    def _seed(order_id: str = "order_test_1", uid: str = "user_1", **fields: Any) -> Dict[str, Any]:
        data = {
            "orderId": order_id,
            "uid": uid,
            "planId": "individual",
            "billingPeriod": "monthly",
            "amount": 19900,
            "currency": "INR",
            "status": "created",
            **fields,
        }
        db.seed(f"orders/{order_id}", data)
        return data

    return _seed


# ============================================================================
# FASTAPI TEST CLIENT FIXTURES
# ============================================================================

@pytest.fixture
def services(catalog, order_service, subscription_service, verification_service, webhook_handler, account_service):
    from cloud_functions.dependencies import BillingServices
    return BillingServices(
        catalog=catalog,
        orders=order_service,
        subscriptions=subscription_service,
        verification=verification_service,
        webhooks=webhook_handler,
        accounts=account_service,
    )


@pytest.fixture
def authenticated_uid():
    return "user_1"


@pytest.fixture
def app(services, authenticated_uid):
    """Create FastAPI application with fake services and a signed-in user"""
    from cloud_functions.main import create_app
    from cloud_functions.middleware.auth import AuthenticatedUser, get_current_user

    application = create_app(services=services, settings=Settings(ENVIRONMENT="test", LOG_LEVEL="DEBUG"))

    async def _current_user():
        return AuthenticatedUser(
            uid=authenticated_uid,
            email=f"{authenticated_uid}@example.com",
            email_verified=True,
            display_name="Test User",
        )

    application.dependency_overrides[get_current_user] = _current_user
    return application


@pytest.fixture
def client(app):
    """Create synchronous test client"""
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
async def async_client(app):
    """Create asynchronous test client"""
    from httpx import AsyncClient, ASGITransport
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac
