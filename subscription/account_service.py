"""
Account erasure and data export for the dashboard's privacy settings.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict

from subscription.billing_dates import utc_now
from subscription.errors import PaymentGatewayError
from subscription.gateway import RazorpayGateway
from subscription.store import FirestoreBillingStore

logger = logging.getLogger(__name__)

ACCOUNT_DELETED_MESSAGE = "Your account and all associated data have been permanently deleted."


class AccountService:
    def __init__(
        self,
        gateway: RazorpayGateway,
        store: FirestoreBillingStore,
        delete_auth_user: Callable[[str], None],
        clock: Callable[[], datetime] = utc_now,
    ):
        self._gateway = gateway
        self._store = store
        self._delete_auth_user = delete_auth_user
        self._clock = clock

    def delete_account(self, uid: str) -> str:
        """
        Permanently delete the user's data and sign-in identity.

        An active Razorpay subscription is cancelled immediately first. If that
        fails the deletion still goes ahead; the failure is logged for support.
        """
        logger.info(f"Account deletion requested for user: {uid}")

        user = self._store.get_user(uid)
        if user is not None and user.has_active_subscription:
            try:
                self._gateway.cancel_subscription(user.razorpay_subscription_id, at_cycle_end=False)
                logger.info(f"Razorpay subscription cancelled: {user.razorpay_subscription_id}")
            except PaymentGatewayError as e:
                logger.error(f"Failed to cancel subscription {user.razorpay_subscription_id} (continuing with deletion): {e}")

        self._store.delete_user_data(uid)
        self._delete_auth_user(uid)

        logger.info(f"Account deleted successfully: {uid}")
        return ACCOUNT_DELETED_MESSAGE

    def export_user_data(self, uid: str) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "exportedAt": self._clock().isoformat(),
            "userId": uid,
        }
        data.update(self._store.export_user_data(uid))
        return data
