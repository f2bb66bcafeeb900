"""
Razorpay signature helpers.

Two schemes are in use:
- Checkout: hex(HMAC-SHA256(key_secret, "{order_id}|{payment_id}"))
- Webhooks: hex(HMAC-SHA256(webhook_secret, raw_request_body))
"""

import hmac
import hashlib
from typing import Optional, Union


def compute_signature(secret: str, message: Union[str, bytes]) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def order_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    return compute_signature(secret, f"{order_id}|{payment_id}")


def _matches(expected: str, supplied: Optional[str]) -> bool:
    if not supplied:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def verify_order_payment_signature(
    order_id: str,
    payment_id: str,
    signature: Optional[str],
    secret: str,
) -> bool:
    """Check the signature handed to the browser by Razorpay Checkout"""
    return _matches(order_payment_signature(order_id, payment_id, secret), signature)


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Check X-Razorpay-Signature against the exact bytes received"""
    return _matches(compute_signature(secret, body), signature)
