"""
Razorpay Webhook Handler

Webhooks are the authoritative source of subscription state. Each delivery is
authenticated over the raw body, validated into a known event shape and
dispatched to one of six handlers.

Policy:
- unknown events are acknowledged so Razorpay stops retrying them
- known events with a bad shape are quarantined and acknowledged
- events that cannot be attributed to a user are logged and dropped
- an unexpected exception propagates so the API answers 500 and Razorpay
  redelivers
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from firebase_admin import firestore
from pydantic import ValidationError

from subscription.billing_dates import from_unix_seconds, utc_now
from subscription.errors import ConfigurationError, InvalidRequestError, WebhookSignatureError
from subscription.models import (
    BillingConfig,
    OrderStatus,
    PaymentHistoryEntry,
    PaymentType,
    PlanId,
    PlanStatus,
    SubscriptionRecord,
    SubscriptionState,
    UserProfile,
)
from subscription.signatures import verify_webhook_signature
from subscription.store import FirestoreBillingStore
from subscription.webhook_events import (
    KNOWN_EVENTS,
    BilledSubscriptionEvent,
    PaymentEvent,
    SubscriptionStateEvent,
    parse_webhook_event,
)

logger = logging.getLogger(__name__)

ACKNOWLEDGED = "OK"
ALREADY_PROCESSED = "OK - Already processed"

# Processed event ids are kept long enough to cover Razorpay's retry window
PROCESSED_WEBHOOK_TTL = timedelta(days=7)


class WebhookHandler:
    def __init__(
        self,
        config: BillingConfig,
        store: FirestoreBillingStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._config = config
        self._store = store
        self._clock = clock
        self._handlers: Dict[str, Callable] = {
            "payment.captured": self._on_payment_captured,
            "payment.failed": self._on_payment_failed,
            "subscription.activated": self._on_subscription_activated,
            "subscription.charged": self._on_subscription_charged,
            "subscription.cancelled": self._on_subscription_cancelled,
            "subscription.halted": self._on_subscription_halted,
        }

    def _authenticate(self, raw_body: bytes, signature: Optional[str]) -> None:
        if not self._config.webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET is not configured")
            raise ConfigurationError("Webhook not configured")
        if not signature:
            logger.warning("Missing Razorpay signature")
            raise WebhookSignatureError("Missing signature")
        if not verify_webhook_signature(raw_body, signature, self._config.webhook_secret):
            logger.warning("Invalid Razorpay webhook signature")
            raise WebhookSignatureError("Invalid signature")

    def handle(self, raw_body: bytes, signature: Optional[str], event_id: Optional[str] = None) -> str:
        """
        Process one delivery and return the plain-text acknowledgement.

        Args:
            raw_body: exact request bytes, as signed by Razorpay
            signature: X-Razorpay-Signature header
            event_id: X-Razorpay-Event-Id header, used to drop redeliveries
        """
        self._authenticate(raw_body, signature)

        try:
            data = json.loads(raw_body)
        except ValueError:
            raise InvalidRequestError("Invalid payload")
        if not isinstance(data, dict):
            raise InvalidRequestError("Invalid payload")

        event_type = data.get("event")
        if not isinstance(event_type, str) or event_type not in KNOWN_EVENTS:
            logger.info(f"Unhandled webhook event: {event_type}")
            return ACKNOWLEDGED

        if event_id and self._store.is_webhook_processed(event_id):
            logger.info(f"Webhook {event_id} ({event_type}) already processed")
            return ALREADY_PROCESSED

        try:
            event = parse_webhook_event(data)
        except ValidationError as e:
            logger.warning(f"Quarantining malformed {event_type} webhook: {e.error_count()} validation errors")
            self._store.quarantine_webhook(event_type, str(e), raw_body)
            return ACKNOWLEDGED

        logger.info(f"Razorpay webhook received: {event_type}")
        self._handlers[event.event](event)

        # Recorded only after success so a failed attempt is redelivered
        if event_id:
            self._store.mark_webhook_processed(event_id, event.event, self._clock() + PROCESSED_WEBHOOK_TTL)
        return ACKNOWLEDGED

    # ------------------------------------------------------------------
    # Payment events
    # ------------------------------------------------------------------

    def _on_payment_captured(self, event: PaymentEvent) -> None:
        payment = event.payment
        uid = payment.note("uid")
        if not uid:
            logger.error(f"Payment captured but no UID in notes: {payment.id}")
            return

        logger.info(f"Payment captured: {payment.id} for {uid}, amount {payment.amount}")
        if payment.order_id:
            # Still records capturedAt when verification already marked it paid
            self._store.advance_order(
                payment.order_id,
                OrderStatus.CAPTURED,
                {"paymentId": payment.id, "capturedAt": firestore.SERVER_TIMESTAMP},
                keep_fields_on_skip=True,
            )

    def _on_payment_failed(self, event: PaymentEvent) -> None:
        payment = event.payment
        logger.info(f"Payment failed: {payment.id} for order {payment.order_id}")
        if payment.order_id:
            self._store.advance_order(
                payment.order_id,
                OrderStatus.FAILED,
                {"failedAt": firestore.SERVER_TIMESTAMP},
            )

    # ------------------------------------------------------------------
    # Subscription events
    # ------------------------------------------------------------------

    def _attributed_user(self, event_type: str, subscription_id: str, uid: Optional[str]) -> Optional[UserProfile]:
        if not uid:
            logger.error(f"{event_type} for {subscription_id} has no firebase_uid in notes, dropping")
            return None
        user = self._store.get_user(uid)
        if user is None:
            logger.warning(f"{event_type} for {subscription_id} references unknown user {uid}, dropping")
        return user

    def _on_subscription_activated(self, event: BilledSubscriptionEvent) -> None:
        subscription = event.subscription
        user = self._attributed_user(event.event, subscription.id, subscription.note("firebase_uid"))
        if user is None:
            return
        uid = user.uid

        existing = self._store.get_subscription(subscription.id)
        if existing is not None and existing.is_cancelled:
            logger.warning(f"Ignoring activation of cancelled subscription {subscription.id}")
            return

        plan_id = subscription.note("planId") or PlanId.INDIVIDUAL.value
        current_end = from_unix_seconds(subscription.current_end)
        logger.info(f"Subscription activated: {subscription.id} for {uid}, plan {plan_id}")

        user_fields = {
            "plan": plan_id,
            "planStatus": PlanStatus.ACTIVE.value,
            "razorpay_subscription_id": subscription.id,
            "subscription_expires_at": current_end,
            "subscription_started_at": firestore.SERVER_TIMESTAMP,
        }
        billing_period = subscription.note("billingPeriod")
        if billing_period:
            user_fields["billing_period"] = billing_period

        self._store.commit_subscription_change(
            subscription.id,
            uid,
            user_fields=user_fields,
            subscription_fields={
                "subscriptionId": subscription.id,
                "uid": uid,
                "status": SubscriptionState.ACTIVE.value,
                "activatedAt": firestore.SERVER_TIMESTAMP,
            },
            expected_update_time=_update_time(existing),
        )

    def _on_subscription_charged(self, event: BilledSubscriptionEvent) -> None:
        subscription = event.subscription
        user = self._attributed_user(event.event, subscription.id, subscription.note("firebase_uid"))
        if user is None:
            return
        uid = user.uid

        existing = self._store.get_subscription(subscription.id)
        current_end = from_unix_seconds(subscription.current_end)
        logger.info(f"Subscription charged: {subscription.id} for {uid}, next billing {current_end.isoformat()}")

        user_fields = {"subscription_expires_at": current_end}
        subscription_fields = {"subscriptionId": subscription.id, "uid": uid, "lastChargedAt": firestore.SERVER_TIMESTAMP}
        if existing is not None and existing.is_cancelled:
            # The charge was real, but a cancelled subscription stays cancelled
            logger.info(f"Renewal for cancelled subscription {subscription.id}, extending access only")
        else:
            user_fields["planStatus"] = PlanStatus.ACTIVE.value
            subscription_fields["status"] = SubscriptionState.ACTIVE.value

        payment = event.payment
        entry = PaymentHistoryEntry(
            type=PaymentType.SUBSCRIPTION_RENEWAL,
            status="captured",
            plan_id=subscription.note("planId"),
            billing_period=subscription.note("billingPeriod"),
            subscription_id=subscription.id,
            payment_id=payment.id if payment else None,
            amount=payment.amount if payment else None,
            currency=payment.currency if payment else None,
        )

        self._store.commit_subscription_change(
            subscription.id,
            uid,
            user_fields=user_fields,
            subscription_fields=subscription_fields,
            expected_update_time=_update_time(existing),
            entry=entry,
        )

    def _apply_state_change(
        self,
        event: SubscriptionStateEvent,
        plan_status: PlanStatus,
        user_extra: Dict,
        subscription_fields: Dict,
    ) -> None:
        subscription = event.subscription
        user = self._attributed_user(event.event, subscription.id, subscription.note("firebase_uid"))
        if user is None:
            return
        uid = user.uid

        existing = self._store.get_subscription(subscription.id)

        user_fields = {"planStatus": plan_status.value, **user_extra}
        if user.razorpay_subscription_id != subscription.id:
            # Not the subscription the entitlement currently rests on
            logger.info(f"{event.event} for {subscription.id} does not match user {uid}'s subscription, user unchanged")
            user_fields = {}

        self._store.commit_subscription_change(
            subscription.id,
            uid,
            user_fields=user_fields,
            subscription_fields={"subscriptionId": subscription.id, "uid": uid, **subscription_fields},
            expected_update_time=_update_time(existing),
        )

    def _on_subscription_cancelled(self, event: SubscriptionStateEvent) -> None:
        logger.info(f"Subscription cancelled: {event.subscription.id}")
        # Access continues until subscription_expires_at
        self._apply_state_change(
            event,
            PlanStatus.CANCELLED,
            {"subscription_cancelled_at": firestore.SERVER_TIMESTAMP},
            {"status": SubscriptionState.CANCELLED.value, "cancelledAt": firestore.SERVER_TIMESTAMP},
        )

    def _on_subscription_halted(self, event: SubscriptionStateEvent) -> None:
        logger.warning(f"Subscription halted after repeated charge failures: {event.subscription.id}")
        self._apply_state_change(
            event,
            PlanStatus.PAYMENT_FAILED,
            {},
            {"status": SubscriptionState.HALTED.value, "haltedAt": firestore.SERVER_TIMESTAMP},
        )
        # TODO: email the user about the failed renewal once the transactional mail sender is wired in


def _update_time(record: Optional[SubscriptionRecord]) -> Optional[datetime]:
    return record.update_time if record is not None else None
