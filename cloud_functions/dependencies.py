"""
Service wiring for the billing API.

Services are built once per process from Settings and stored on app.state.
Tests hand create_app() a ready-made BillingServices instead.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from firebase_admin import auth, firestore

from config import Settings, get_settings
from cloud_functions.firebase import get_firebase_app
from subscription.account_service import AccountService
from subscription.errors import BillingError
from subscription.gateway import RazorpayGateway, create_razorpay_client
from subscription.order_service import OrderService
from subscription.payment_verification import PaymentVerificationService
from subscription.plans import PlanCatalog
from subscription.store import FirestoreBillingStore
from subscription.subscription_service import SubscriptionService
from subscription.webhook_handler import WebhookHandler

logger = logging.getLogger(__name__)


@dataclass
class BillingServices:
    catalog: PlanCatalog
    orders: OrderService
    subscriptions: SubscriptionService
    verification: PaymentVerificationService
    webhooks: WebhookHandler
    accounts: AccountService


def build_services(settings: Settings) -> BillingServices:
    firebase_app = get_firebase_app(settings.GOOGLE_APPLICATION_CREDENTIALS)
    config = settings.to_billing_config()

    store = FirestoreBillingStore(firestore.client(app=firebase_app))
    gateway = RazorpayGateway(create_razorpay_client(config.key_id, config.key_secret))

    return BillingServices(
        catalog=config.catalog,
        orders=OrderService(config, gateway, store),
        subscriptions=SubscriptionService(config, gateway, store),
        verification=PaymentVerificationService(config, store),
        webhooks=WebhookHandler(config, store),
        accounts=AccountService(
            gateway,
            store,
            delete_auth_user=lambda uid: auth.delete_user(uid, app=firebase_app),
        ),
    )


def get_services(request: Request) -> BillingServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services(get_settings())
        request.app.state.services = services
    return services


async def call_service(operation: str, fn: Callable, *args: Any) -> Any:
    """
    Run a blocking service call off the event loop.

    BillingError passes through to the app's exception handler; anything else
    becomes a 500 carrying the underlying message.
    """
    try:
        return await run_in_threadpool(fn, *args)
    except BillingError:
        raise
    except Exception as e:
        logger.exception(f"Error during {operation}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e) or f"Failed to {operation}",
        )
