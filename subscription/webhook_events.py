"""
Razorpay webhook payloads.

Each delivery is validated into one of a closed set of event shapes before
any handler looks at it. Only the fields this service reads are declared;
everything else in Razorpay's payload is ignored.

Reference: https://razorpay.com/docs/webhooks/payloads/
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


PAYMENT_EVENTS = ("payment.captured", "payment.failed")
BILLED_SUBSCRIPTION_EVENTS = ("subscription.activated", "subscription.charged")
SUBSCRIPTION_STATE_EVENTS = ("subscription.cancelled", "subscription.halted")

KNOWN_EVENTS = frozenset(PAYMENT_EVENTS + BILLED_SUBSCRIPTION_EVENTS + SUBSCRIPTION_STATE_EVENTS)


class _NotedEntity(BaseModel):
    notes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("notes", mode="before")
    @classmethod
    def normalise_notes(cls, v):
        # Razorpay sends an empty JSON array when no notes were attached
        if v is None or v == []:
            return {}
        return v

    def note(self, key: str) -> Optional[str]:
        value = self.notes.get(key)
        if value is None or value == "":
            return None
        return str(value)


class PaymentEntity(_NotedEntity):
    id: str
    order_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None


class SubscriptionEntity(_NotedEntity):
    id: str
    plan_id: Optional[str] = None
    status: Optional[str] = None
    customer_id: Optional[str] = None
    current_start: Optional[int] = None
    current_end: Optional[int] = None


class BilledSubscriptionEntity(SubscriptionEntity):
    """Activation and renewal both carry the end of the paid period"""
    current_end: int


class PaymentWrapper(BaseModel):
    entity: PaymentEntity


class SubscriptionWrapper(BaseModel):
    entity: SubscriptionEntity


class BilledSubscriptionWrapper(BaseModel):
    entity: BilledSubscriptionEntity


class PaymentPayload(BaseModel):
    payment: PaymentWrapper


class BilledSubscriptionPayload(BaseModel):
    subscription: BilledSubscriptionWrapper
    payment: Optional[PaymentWrapper] = None


class SubscriptionStatePayload(BaseModel):
    subscription: SubscriptionWrapper


class PaymentEvent(BaseModel):
    event: Literal["payment.captured", "payment.failed"]
    payload: PaymentPayload

    @property
    def payment(self) -> PaymentEntity:
        return self.payload.payment.entity


class BilledSubscriptionEvent(BaseModel):
    event: Literal["subscription.activated", "subscription.charged"]
    payload: BilledSubscriptionPayload

    @property
    def subscription(self) -> BilledSubscriptionEntity:
        return self.payload.subscription.entity

    @property
    def payment(self) -> Optional[PaymentEntity]:
        if self.payload.payment is None:
            return None
        return self.payload.payment.entity


class SubscriptionStateEvent(BaseModel):
    event: Literal["subscription.cancelled", "subscription.halted"]
    payload: SubscriptionStatePayload

    @property
    def subscription(self) -> SubscriptionEntity:
        return self.payload.subscription.entity


WebhookEvent = Annotated[
    Union[PaymentEvent, BilledSubscriptionEvent, SubscriptionStateEvent],
    Field(discriminator="event"),
]

_webhook_event_adapter = TypeAdapter(WebhookEvent)


def parse_webhook_event(data: Any) -> Union[PaymentEvent, BilledSubscriptionEvent, SubscriptionStateEvent]:
    """Validate a decoded payload; raises pydantic.ValidationError on a bad shape"""
    return _webhook_event_adapter.validate_python(data)
