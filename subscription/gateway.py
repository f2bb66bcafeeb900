"""
Razorpay Gateway Client

Thin wrapper over the official Razorpay SDK. Each method is one network round
trip; nothing is retried here. SDK and transport errors are re-raised as
PaymentGatewayError so the API layer can answer 500 with the gateway's message.
"""

import logging
from typing import Any, Dict, Optional

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError, ServerError

from subscription.errors import PaymentGatewayError

logger = logging.getLogger(__name__)

_GATEWAY_ERRORS = (BadRequestError, GatewayError, ServerError, requests.RequestException)


def create_razorpay_client(key_id: str, key_secret: str) -> razorpay.Client:
    client = razorpay.Client(auth=(key_id, key_secret))
    client.set_app_details({"title": "TermiVoxed", "version": "1.0.0"})
    return client


class RazorpayGateway:
    """Orders, subscriptions and customers on Razorpay"""

    def __init__(self, client: Any):
        self._client = client

    def _call(self, operation: str, fn, *args) -> Dict[str, Any]:
        try:
            return fn(*args)
        except _GATEWAY_ERRORS as e:
            logger.error(f"Razorpay {operation} failed: {e}")
            raise PaymentGatewayError(str(e) or f"Razorpay {operation} failed") from e

    def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Dict[str, str],
    ) -> Dict[str, Any]:
        return self._call("order creation", self._client.order.create, {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        })

    def create_subscription(
        self,
        plan_id: str,
        total_count: int,
        notes: Dict[str, str],
        customer_notify: bool = True,
    ) -> Dict[str, Any]:
        return self._call("subscription creation", self._client.subscription.create, {
            "plan_id": plan_id,
            "customer_notify": 1 if customer_notify else 0,
            "total_count": total_count,
            "notes": notes,
        })

    def create_customer(
        self,
        name: str,
        email: Optional[str],
        notes: Dict[str, str],
    ) -> Dict[str, Any]:
        # fail_existing=0 returns the existing customer for a repeated email
        # instead of failing, so a retry after a lost response is harmless.
        return self._call("customer creation", self._client.customer.create, {
            "name": name,
            "email": email or "",
            "fail_existing": "0",
            "notes": notes,
        })

    def cancel_subscription(self, subscription_id: str, at_cycle_end: bool = True) -> Dict[str, Any]:
        return self._call(
            "subscription cancellation",
            self._client.subscription.cancel,
            subscription_id,
            {"cancel_at_cycle_end": 1 if at_cycle_end else 0},
        )
