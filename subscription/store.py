"""
Firestore persistence for the billing service.

Collections:
    users/{uid}                     profile + entitlement fields
    users/{uid}/payments/{auto}     append-only payment history
    orders/{orderId}                one-time checkout orders
    subscriptions/{subscriptionId}  recurring billing agreements
    processed_webhooks/{eventId}    delivered webhook ids (TTL on expiresAt)
    quarantined_webhooks/{auto}     signed payloads that failed validation

Order writes are conditional on the update_time of the snapshot they were
derived from, so the browser verification path and the webhook path cannot
silently overwrite each other.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from subscription.errors import ConflictError
from subscription.models import (
    Order,
    OrderStatus,
    PaymentHistoryEntry,
    SubscriptionRecord,
    UserProfile,
)

logger = logging.getLogger(__name__)

USERS = "users"
ORDERS = "orders"
SUBSCRIPTIONS = "subscriptions"
PAYMENTS = "payments"
PROCESSED_WEBHOOKS = "processed_webhooks"
QUARANTINED_WEBHOOKS = "quarantined_webhooks"

USER_SUBCOLLECTIONS = ("projects", "payments", "voice_samples", "favorites")
PROJECT_SUBCOLLECTIONS = ("segments", "exports")

MAX_CONDITIONAL_WRITE_ATTEMPTS = 3


class FirestoreBillingStore:
    """Typed access to the billing documents"""

    def __init__(self, db: Any):
        self._db = db

    def _user_ref(self, uid: str):
        return self._db.collection(USERS).document(uid)

    def _order_ref(self, order_id: str):
        return self._db.collection(ORDERS).document(order_id)

    def _subscription_ref(self, subscription_id: str):
        return self._db.collection(SUBSCRIPTIONS).document(subscription_id)

    def _precondition(self, update_time: Optional[datetime]):
        if update_time is None:
            return None
        return self._db.write_option(last_update_time=update_time)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, uid: str) -> Optional[UserProfile]:
        snapshot = self._user_ref(uid).get()
        if not snapshot.exists:
            return None
        return UserProfile.from_dict(uid, snapshot.to_dict() or {})

    def update_user(self, uid: str, fields: Dict[str, Any]) -> bool:
        """Update entitlement fields; False when the user document is gone"""
        try:
            self._user_ref(uid).update(fields)
        except gcp_exceptions.NotFound:
            return False
        return True

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(self, order: Order) -> None:
        data = order.to_dict()
        data["createdAt"] = firestore.SERVER_TIMESTAMP
        self._order_ref(order.order_id).set(data)

    def get_order(self, order_id: str) -> Optional[Order]:
        snapshot = self._order_ref(order_id).get()
        if not snapshot.exists:
            return None
        return Order.from_dict(snapshot.to_dict() or {}, update_time=snapshot.update_time)

    def advance_order(
        self,
        order_id: str,
        status: OrderStatus,
        fields: Dict[str, Any],
        keep_fields_on_skip: bool = False,
    ) -> bool:
        """
        Move an order to `status` unless it already holds a stronger state.

        When the order is already further along, the status is left alone and
        `fields` are written only if keep_fields_on_skip is set. Returns True
        when the status was written, False when skipped or the order is unknown.
        """
        ref = self._order_ref(order_id)
        for _ in range(MAX_CONDITIONAL_WRITE_ATTEMPTS):
            snapshot = ref.get()
            if not snapshot.exists:
                logger.warning(f"Order {order_id} not found, status {status.value} not recorded")
                return False

            current = OrderStatus.parse((snapshot.to_dict() or {}).get("status"))
            advances = status.rank >= current.rank
            if advances:
                update = {"status": status.value, **fields}
            elif keep_fields_on_skip:
                update = dict(fields)
            else:
                logger.info(f"Order {order_id} is {current.value}, ignoring {status.value}")
                return False

            try:
                ref.update(update, option=self._precondition(snapshot.update_time))
            except gcp_exceptions.FailedPrecondition:
                logger.info(f"Order {order_id} changed concurrently, re-reading")
                continue
            return advances

        raise ConflictError("Order was updated concurrently. Please retry.")

    def record_verified_payment(
        self,
        order: Order,
        payment_id: str,
        user_fields: Dict[str, Any],
        entry: PaymentHistoryEntry,
    ) -> None:
        """
        Mark the order paid, grant the entitlement and append history in one
        batch. Raises FailedPrecondition if the order changed since it was read.
        """
        user_ref = self._user_ref(order.uid)
        history = entry.to_dict()
        history["createdAt"] = firestore.SERVER_TIMESTAMP

        batch = self._db.batch()
        batch.update(
            self._order_ref(order.order_id),
            {
                "status": OrderStatus.PAID.value,
                "paymentId": payment_id,
                "paidAt": firestore.SERVER_TIMESTAMP,
            },
            option=self._precondition(order.update_time),
        )
        batch.update(user_ref, user_fields)
        batch.set(user_ref.collection(PAYMENTS).document(), history)
        batch.commit()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def create_subscription(self, record: SubscriptionRecord) -> None:
        data = record.to_dict()
        data["createdAt"] = firestore.SERVER_TIMESTAMP
        self._subscription_ref(record.subscription_id).set(data)

    def get_subscription(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        snapshot = self._subscription_ref(subscription_id).get()
        if not snapshot.exists:
            return None
        return SubscriptionRecord.from_dict(snapshot.to_dict() or {}, update_time=snapshot.update_time)

    def commit_subscription_change(
        self,
        subscription_id: str,
        uid: str,
        user_fields: Dict[str, Any],
        subscription_fields: Dict[str, Any],
        expected_update_time: Optional[datetime] = None,
        entry: Optional[PaymentHistoryEntry] = None,
    ) -> None:
        """
        Apply an entitlement change together with its subscription record.

        With expected_update_time the record update is conditional on the
        snapshot the caller inspected; without it the record is upserted.
        Empty user_fields leave the user document untouched.
        """
        user_ref = self._user_ref(uid)
        subscription_ref = self._subscription_ref(subscription_id)

        batch = self._db.batch()
        if user_fields:
            batch.update(user_ref, user_fields)
        if expected_update_time is not None:
            batch.update(subscription_ref, subscription_fields, option=self._precondition(expected_update_time))
        else:
            batch.set(subscription_ref, subscription_fields, merge=True)
        if entry is not None:
            history = entry.to_dict()
            history["createdAt"] = firestore.SERVER_TIMESTAMP
            batch.set(user_ref.collection(PAYMENTS).document(), history)
        batch.commit()

    # ------------------------------------------------------------------
    # Webhook bookkeeping
    # ------------------------------------------------------------------

    def is_webhook_processed(self, event_id: str) -> bool:
        return self._db.collection(PROCESSED_WEBHOOKS).document(event_id).get().exists

    def mark_webhook_processed(self, event_id: str, event_type: str, expires_at: datetime) -> None:
        self._db.collection(PROCESSED_WEBHOOKS).document(event_id).set({
            "eventId": event_id,
            "eventType": event_type,
            "processedAt": firestore.SERVER_TIMESTAMP,
            # Firestore TTL policy deletes the document after this time
            "expiresAt": expires_at,
        })

    def quarantine_webhook(self, event_type: Optional[str], reason: str, raw_body: bytes) -> None:
        self._db.collection(QUARANTINED_WEBHOOKS).document().set({
            "eventType": event_type,
            "reason": reason,
            "rawBody": raw_body.decode("utf-8", errors="replace"),
            "receivedAt": firestore.SERVER_TIMESTAMP,
        })

    # ------------------------------------------------------------------
    # Account data (export / erasure)
    # ------------------------------------------------------------------

    @staticmethod
    def _documents(collection) -> List[Dict[str, Any]]:
        return [{"id": snap.id, **(snap.to_dict() or {})} for snap in collection.stream()]

    def _owned_by(self, collection: str, uid: str):
        return self._db.collection(collection).where(filter=FieldFilter("uid", "==", uid))

    def list_payments(self, uid: str) -> List[Dict[str, Any]]:
        return self._documents(self._user_ref(uid).collection(PAYMENTS))

    def export_user_data(self, uid: str) -> Dict[str, Any]:
        user_ref = self._user_ref(uid)
        snapshot = user_ref.get()
        data: Dict[str, Any] = {}
        if snapshot.exists:
            data["profile"] = snapshot.to_dict() or {}
        data["projects"] = self._documents(user_ref.collection("projects"))
        data["payments"] = self._documents(user_ref.collection(PAYMENTS))
        data["favorites"] = self._documents(user_ref.collection("favorites"))
        data["orders"] = self._documents(self._owned_by(ORDERS, uid))
        data["subscriptions"] = self._documents(self._owned_by(SUBSCRIPTIONS, uid))
        return data

    def delete_user_data(self, uid: str) -> None:
        """
        Delete the user document, its subcollections and the user's orders and
        subscriptions. Firestore does not cascade, so nested collections are
        walked explicitly.
        """
        user_ref = self._user_ref(uid)
        for name in USER_SUBCOLLECTIONS:
            for doc_ref in user_ref.collection(name).list_documents():
                if name == "projects":
                    for nested in PROJECT_SUBCOLLECTIONS:
                        for nested_ref in doc_ref.collection(nested).list_documents():
                            nested_ref.delete()
                doc_ref.delete()

        for collection in (ORDERS, SUBSCRIPTIONS):
            for snap in self._owned_by(collection, uid).stream():
                snap.reference.delete()

        user_ref.delete()
