"""
Subscription Service

Recurring billing through Razorpay Subscriptions. The subscription status on
users/{uid} is driven by webhooks (see webhook_handler.py); this module only
starts and cancels subscriptions and reports the current entitlement.

Starting a subscription takes two gateway calls (customer, then subscription).
The customer id is written to the profile before the second call so a retry
reuses it, and a subscription that cannot be recorded locally is cancelled on
the gateway straight away.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from firebase_admin import firestore

from subscription.billing_dates import utc_now
from subscription.errors import InvalidRequestError, NotFoundError, PaymentGatewayError
from subscription.gateway import RazorpayGateway
from subscription.models import (
    BillingConfig,
    BillingPeriod,
    PlanStatus,
    SubscriptionRecord,
    SubscriptionState,
    UserProfile,
    isoformat_or_none,
)
from subscription.store import FirestoreBillingStore

logger = logging.getLogger(__name__)

# Number of charges Razorpay is authorised to attempt:
# 10 years at monthly cadence, 1 year at yearly cadence.
TOTAL_BILLING_CYCLES = {
    BillingPeriod.MONTHLY: 120,
    BillingPeriod.YEARLY: 12,
}

CANCELLED_MESSAGE = (
    "Subscription cancelled. You will retain access until the end of your current billing period."
)


@dataclass
class CheckoutSubscription:
    subscription_id: str
    short_url: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscriptionId": self.subscription_id,
            "shortUrl": self.short_url,
        }


@dataclass
class SubscriptionStatusView:
    """Entitlement summary returned to the dashboard"""
    plan: str
    status: str
    expires_at: Optional[datetime]
    billing_period: Optional[str]
    plan_status: Optional[str]
    cancelled_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan,
            "status": self.status,
            "expiresAt": isoformat_or_none(self.expires_at),
            "billingPeriod": self.billing_period,
            "planStatus": self.plan_status,
            "cancelledAt": isoformat_or_none(self.cancelled_at),
        }


class SubscriptionService:
    def __init__(
        self,
        config: BillingConfig,
        gateway: RazorpayGateway,
        store: FirestoreBillingStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._config = config
        self._gateway = gateway
        self._store = store
        self._clock = clock

    def _require_user(self, uid: str) -> UserProfile:
        user = self._store.get_user(uid)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _resolve_customer(self, user: UserProfile) -> str:
        if user.razorpay_customer_id:
            return user.razorpay_customer_id

        customer = self._gateway.create_customer(
            name=user.display_name or self._config.default_customer_name,
            email=user.email,
            notes={"firebase_uid": user.uid},
        )
        customer_id = customer["id"]
        if not self._store.update_user(user.uid, {"razorpay_customer_id": customer_id}):
            raise NotFoundError("User not found")
        logger.info(f"Created Razorpay customer {customer_id} for {user.uid}")
        return customer_id

    def create_subscription(self, uid: str, plan_id: str, billing_period: str) -> CheckoutSubscription:
        plan, period, pricing = self._config.catalog.resolve(plan_id, billing_period)
        if not pricing.has_recurring_plan:
            raise InvalidRequestError("Subscription plan not configured. Use one-time payment instead.")

        user = self._require_user(uid)
        if user.has_active_subscription:
            raise InvalidRequestError("You already have an active subscription. Please cancel it first.")

        customer_id = self._resolve_customer(user)

        gateway_subscription = self._gateway.create_subscription(
            plan_id=pricing.external_plan_id,
            total_count=TOTAL_BILLING_CYCLES[period],
            notes={
                "firebase_uid": uid,
                "planId": plan.id.value,
                "billingPeriod": period.value,
            },
        )
        subscription_id = gateway_subscription["id"]

        record = SubscriptionRecord(
            subscription_id=subscription_id,
            uid=uid,
            plan_id=plan.id.value,
            billing_period=period.value,
            # Usually "created" until the user authorises the mandate
            status=gateway_subscription.get("status", SubscriptionState.CREATED.value),
            customer_id=customer_id,
        )
        try:
            self._store.create_subscription(record)
        except Exception:
            logger.error(f"Could not record subscription {subscription_id} for {uid}, cancelling it on Razorpay")
            self._compensate(subscription_id)
            raise

        logger.info(f"Created subscription {subscription_id} for {uid}: {plan.id.value}/{period.value}")
        return CheckoutSubscription(
            subscription_id=subscription_id,
            short_url=gateway_subscription.get("short_url", ""),
        )

    def _compensate(self, subscription_id: str) -> None:
        try:
            self._gateway.cancel_subscription(subscription_id, at_cycle_end=False)
        except PaymentGatewayError as e:
            logger.error(f"Orphaned Razorpay subscription {subscription_id}: cancellation failed: {e}")

    def get_subscription_status(self, uid: str) -> SubscriptionStatusView:
        """
        Report the caller's entitlement, expiring it lazily.

        There is no background sweep: an entitlement whose expiry has passed is
        marked expired here, on first read.
        """
        user = self._require_user(uid)
        plan_status = user.plan_status

        expired = user.is_expired(self._clock())
        if expired and plan_status != PlanStatus.EXPIRED.value:
            self._store.update_user(uid, {"planStatus": PlanStatus.EXPIRED.value})
            logger.info(f"Entitlement for {uid} expired at {user.subscription_expires_at}")
            plan_status = PlanStatus.EXPIRED.value

        # A cancelled subscription keeps access until the paid period ends
        is_active = not expired and plan_status in (PlanStatus.ACTIVE.value, PlanStatus.CANCELLED.value)

        return SubscriptionStatusView(
            plan=user.plan,
            status="active" if is_active else "expired",
            expires_at=user.subscription_expires_at,
            billing_period=user.billing_period,
            plan_status=plan_status,
            cancelled_at=user.subscription_cancelled_at,
        )

    def cancel_subscription(self, uid: str) -> str:
        """Cancel at the end of the current billing period"""
        user = self._store.get_user(uid)
        if user is None or not user.razorpay_subscription_id:
            raise InvalidRequestError("No active subscription found")

        subscription_id = user.razorpay_subscription_id
        self._gateway.cancel_subscription(subscription_id, at_cycle_end=True)

        existing = self._store.get_subscription(subscription_id)
        self._store.commit_subscription_change(
            subscription_id,
            uid,
            user_fields={
                "planStatus": PlanStatus.CANCELLED.value,
                "subscription_cancelled_at": firestore.SERVER_TIMESTAMP,
            },
            subscription_fields={
                "subscriptionId": subscription_id,
                "uid": uid,
                "status": SubscriptionState.CANCELLED.value,
                "cancelledAt": firestore.SERVER_TIMESTAMP,
            },
            expected_update_time=existing.update_time if existing else None,
        )
        logger.info(f"Subscription {subscription_id} for {uid} set to cancel at cycle end")
        return CANCELLED_MESSAGE
