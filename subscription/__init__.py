"""
Billing core for TermiVoxed

Razorpay-backed payments and subscriptions:
- One-time orders verified by checkout signature
- Recurring subscriptions driven by signed webhooks
- Entitlement records on users/{uid} in Firestore
- Account erasure and data export

Architecture:
- Services receive an immutable BillingConfig built once at startup
- RazorpayGateway wraps the Razorpay SDK
- FirestoreBillingStore owns every Firestore read and write
"""

from subscription.errors import (
    BillingError,
    InvalidRequestError,
    InvalidPlanError,
    PaymentVerificationError,
    WebhookSignatureError,
    ForbiddenError,
    NotFoundError,
    ConflictError,
    ConfigurationError,
    PaymentGatewayError,
)
from subscription.models import (
    PlanId,
    BillingPeriod,
    PlanStatus,
    OrderStatus,
    Plan,
    Pricing,
    PlanFeatures,
    BillingConfig,
)
from subscription.plans import PlanCatalog, build_plan_catalog
from subscription.gateway import RazorpayGateway, create_razorpay_client
from subscription.store import FirestoreBillingStore
from subscription.order_service import OrderService, CheckoutOrder
from subscription.subscription_service import (
    SubscriptionService,
    CheckoutSubscription,
    SubscriptionStatusView,
)
from subscription.payment_verification import PaymentVerificationService
from subscription.webhook_handler import WebhookHandler
from subscription.account_service import AccountService

__all__ = [
    # Errors
    'BillingError',
    'InvalidRequestError',
    'InvalidPlanError',
    'PaymentVerificationError',
    'WebhookSignatureError',
    'ForbiddenError',
    'NotFoundError',
    'ConflictError',
    'ConfigurationError',
    'PaymentGatewayError',
    # Catalog
    'PlanId',
    'BillingPeriod',
    'PlanStatus',
    'OrderStatus',
    'Plan',
    'Pricing',
    'PlanFeatures',
    'BillingConfig',
    'PlanCatalog',
    'build_plan_catalog',
    # Infrastructure
    'RazorpayGateway',
    'create_razorpay_client',
    'FirestoreBillingStore',
    # Services
    'OrderService',
    'CheckoutOrder',
    'SubscriptionService',
    'CheckoutSubscription',
    'SubscriptionStatusView',
    'PaymentVerificationService',
    'WebhookHandler',
    'AccountService',
]
