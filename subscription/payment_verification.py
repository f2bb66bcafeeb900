"""
Payment Verification Service

Completes a one-time purchase after Razorpay Checkout hands the browser a
payment id and signature. The signature is the only proof that the payment
really happened, so nothing is written before it checks out.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions

from subscription.billing_dates import add_billing_period, utc_now
from subscription.errors import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    PaymentVerificationError,
)
from subscription.models import (
    BillingConfig,
    BillingPeriod,
    OrderStatus,
    PaymentHistoryEntry,
    PaymentType,
    PlanStatus,
)
from subscription.signatures import verify_order_payment_signature
from subscription.store import MAX_CONDITIONAL_WRITE_ATTEMPTS, FirestoreBillingStore

logger = logging.getLogger(__name__)


class PaymentVerificationService:
    def __init__(
        self,
        config: BillingConfig,
        store: FirestoreBillingStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._config = config
        self._store = store
        self._clock = clock

    def _success_message(self, plan_id: str) -> str:
        return f"Successfully upgraded to {self._config.catalog.plan_name(plan_id)} plan!"

    def verify_payment(
        self,
        uid: str,
        order_id: Optional[str],
        payment_id: Optional[str],
        signature: Optional[str],
    ) -> str:
        """
        Verify the checkout signature and grant the purchased plan.

        The order update, the entitlement update and the payment history entry
        are committed as one batch. The batch is conditional on the order
        snapshot, so a webhook touching the same order in between forces a
        re-read instead of a blind overwrite.
        """
        if not order_id or not payment_id or not signature:
            raise InvalidRequestError("Missing payment details")

        if not verify_order_payment_signature(order_id, payment_id, signature, self._config.key_secret):
            logger.warning(f"Payment signature verification failed for order {order_id} (uid {uid})")
            raise PaymentVerificationError()

        for _ in range(MAX_CONDITIONAL_WRITE_ATTEMPTS):
            order = self._store.get_order(order_id)
            if order is None:
                raise NotFoundError("Order not found")
            if order.uid != uid:
                raise ForbiddenError("Order does not belong to user")

            if order.status == OrderStatus.PAID:
                # Client retried after a lost response
                logger.info(f"Order {order_id} already paid, nothing to do")
                return self._success_message(order.plan_id)

            try:
                period = BillingPeriod(order.billing_period)
            except ValueError:
                period = BillingPeriod.MONTHLY
            expires_at = add_billing_period(self._clock(), period)

            user_fields = {
                "plan": order.plan_id,
                "planStatus": PlanStatus.ACTIVE.value,
                "razorpay_payment_id": payment_id,
                "subscription_expires_at": expires_at,
                "subscription_started_at": firestore.SERVER_TIMESTAMP,
                "billing_period": order.billing_period,
            }
            entry = PaymentHistoryEntry(
                type=PaymentType.ONE_TIME,
                status="captured",
                plan_id=order.plan_id,
                billing_period=order.billing_period,
                payment_id=payment_id,
                order_id=order_id,
                amount=order.amount,
                currency=order.currency,
            )

            try:
                self._store.record_verified_payment(order, payment_id, user_fields, entry)
            except gcp_exceptions.FailedPrecondition:
                logger.info(f"Order {order_id} changed during verification, retrying")
                continue

            logger.info(f"Payment {payment_id} verified for {uid}: {order.plan_id} until {expires_at.isoformat()}")
            return self._success_message(order.plan_id)

        raise ConflictError("Order was updated concurrently. Please retry.")
