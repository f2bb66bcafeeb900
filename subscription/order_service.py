"""
Order Service

Creates one-time Razorpay orders for the embedded checkout. Every call makes a
new, independent order; repeated calls are not deduplicated.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict

from subscription.billing_dates import utc_now
from subscription.errors import InvalidRequestError, NotFoundError
from subscription.gateway import RazorpayGateway
from subscription.models import BillingConfig, Order
from subscription.store import FirestoreBillingStore

logger = logging.getLogger(__name__)


@dataclass
class CheckoutOrder:
    """What the browser needs to open Razorpay Checkout"""
    order_id: str
    amount: int
    currency: str
    key_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "amount": self.amount,
            "currency": self.currency,
            "keyId": self.key_id,
        }


def make_receipt(uid: str, now: datetime) -> str:
    # Razorpay caps receipts at 40 characters
    return f"rcpt_{uid[:12]}_{int(now.timestamp())}"


class OrderService:
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

    def create_order(self, uid: str, plan_id: str, billing_period: str) -> CheckoutOrder:
        """
        Validate the selection, create the gateway order and record it.

        Raises:
            InvalidPlanError / InvalidRequestError: bad plan, period or a
                sales-assisted plan
            NotFoundError: the caller has no profile document
            PaymentGatewayError: Razorpay rejected the order
        """
        plan, period, pricing = self._config.catalog.resolve(plan_id, billing_period)
        if not pricing.is_self_serve:
            raise InvalidRequestError("Enterprise plan requires custom pricing. Please contact sales.")

        user = self._store.get_user(uid)
        if user is None:
            raise NotFoundError("User not found")

        gateway_order = self._gateway.create_order(
            amount=pricing.amount,
            currency=pricing.currency,
            receipt=make_receipt(uid, self._clock()),
            notes={
                "uid": uid,
                "planId": plan.id.value,
                "billingPeriod": period.value,
                "userEmail": user.email or "",
            },
        )

        order = Order(
            order_id=gateway_order["id"],
            uid=uid,
            plan_id=plan.id.value,
            billing_period=period.value,
            amount=pricing.amount,
            currency=pricing.currency,
        )
        try:
            self._store.create_order(order)
        except Exception:
            logger.error(f"Razorpay order {order.order_id} created for {uid} but not recorded locally")
            raise

        logger.info(f"Created order {order.order_id} for {uid}: {plan.id.value}/{period.value}")
        return CheckoutOrder(
            order_id=order.order_id,
            amount=pricing.amount,
            currency=pricing.currency,
            key_id=self._config.key_id,
        )
