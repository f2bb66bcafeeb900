"""
Billing Data Models

Plans, orders, subscriptions, entitlement records and payment history.

Field names used in to_dict()/from_dict() match the Firestore documents read by
the web dashboard and the desktop app, so they stay camelCase for records owned
by the billing service and snake_case for the legacy entitlement fields on
users/{uid}.
"""

from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from subscription.plans import PlanCatalog


# Sentinel for "no monthly export cap"
UNLIMITED = -1

# Plan reported for users that never purchased anything
FREE_PLAN = "free"


class PlanId(str, Enum):
    """Self-serve and sales-assisted plans"""
    INDIVIDUAL = "individual"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class BillingPeriod(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PlanStatus(str, Enum):
    """planStatus on the user entitlement record"""
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"


class OrderStatus(str, Enum):
    """
    One-time order lifecycle.

    The rank orders terminal states so that a late writer never downgrades a
    stronger outcome (a webhook "captured" arriving after the client verified
    the payment must not undo "paid").
    """
    CREATED = "created"
    FAILED = "failed"
    CAPTURED = "captured"
    PAID = "paid"

    @property
    def rank(self) -> int:
        return _ORDER_STATUS_RANK[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> "OrderStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.CREATED


_ORDER_STATUS_RANK = {
    OrderStatus.CREATED: 0,
    OrderStatus.FAILED: 1,
    OrderStatus.CAPTURED: 2,
    OrderStatus.PAID: 3,
}


class SubscriptionState(str, Enum):
    """Subscription record states written by this service"""
    CREATED = "created"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    HALTED = "halted"


class PaymentType(str, Enum):
    ONE_TIME = "one_time"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"


# ============================================================================
# Plan catalog entries
# ============================================================================

@dataclass(frozen=True)
class Pricing:
    """Price of a plan for one billing period, in minor currency units"""
    amount: int
    currency: str = "INR"
    external_plan_id: str = ""

    @property
    def is_self_serve(self) -> bool:
        # Zero amount means the plan is sold by the sales team
        return self.amount > 0

    @property
    def has_recurring_plan(self) -> bool:
        return bool(self.external_plan_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "currency": self.currency,
            "recurring": self.has_recurring_plan,
        }


@dataclass(frozen=True)
class PlanFeatures:
    exports_per_month: int
    max_video_duration: int
    devices: int
    watermark: bool = False
    priority_support: bool = False
    premium_voices: bool = False
    voice_cloning: bool = False
    api_access: bool = False
    custom_branding: bool = False
    sla_guarantee: bool = False

    @property
    def unlimited_exports(self) -> bool:
        return self.exports_per_month == UNLIMITED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exports_per_month": "unlimited" if self.unlimited_exports else self.exports_per_month,
            "max_video_duration": self.max_video_duration,
            "devices": self.devices,
            "watermark": self.watermark,
            "priority_support": self.priority_support,
            "premium_voices": self.premium_voices,
            "voice_cloning": self.voice_cloning,
            "api_access": self.api_access,
            "custom_branding": self.custom_branding,
            "sla_guarantee": self.sla_guarantee,
        }


@dataclass(frozen=True)
class Plan:
    id: PlanId
    name: str
    monthly: Pricing
    yearly: Pricing
    features: PlanFeatures

    def pricing_for(self, period: BillingPeriod) -> Pricing:
        if period == BillingPeriod.YEARLY:
            return self.yearly
        return self.monthly

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id.value,
            "name": self.name,
            "monthly": self.monthly.to_dict(),
            "yearly": self.yearly.to_dict(),
            "features": self.features.to_dict(),
        }


@dataclass(frozen=True)
class BillingConfig:
    """
    Process-wide billing configuration.

    Built once at startup from Settings and handed to every service; nothing
    mutates it afterwards.
    """
    key_id: str
    key_secret: str
    webhook_secret: str
    catalog: "PlanCatalog"
    default_customer_name: str = "TermiVoxed User"


# ============================================================================
# Firestore records
# ============================================================================

def to_datetime(value: Any) -> Optional[datetime]:
    """Normalize a Firestore timestamp (or legacy ISO string) to aware UTC"""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Order:
    """orders/{orderId}"""
    order_id: str
    uid: str
    plan_id: str
    billing_period: str
    amount: int
    currency: str
    status: OrderStatus = OrderStatus.CREATED
    payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    captured_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    # Firestore update_time of the snapshot this record was read from
    update_time: Optional[datetime] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "orderId": self.order_id,
            "uid": self.uid,
            "planId": self.plan_id,
            "billingPeriod": self.billing_period,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value,
        }
        if self.payment_id:
            data["paymentId"] = self.payment_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], update_time: Optional[datetime] = None) -> "Order":
        return cls(
            order_id=data.get("orderId", ""),
            uid=data.get("uid", ""),
            plan_id=data.get("planId", ""),
            billing_period=data.get("billingPeriod", BillingPeriod.MONTHLY.value),
            amount=int(data.get("amount", 0)),
            currency=data.get("currency", "INR"),
            status=OrderStatus.parse(data.get("status")),
            payment_id=data.get("paymentId"),
            created_at=to_datetime(data.get("createdAt")),
            captured_at=to_datetime(data.get("capturedAt")),
            paid_at=to_datetime(data.get("paidAt")),
            failed_at=to_datetime(data.get("failedAt")),
            update_time=update_time,
        )


@dataclass
class SubscriptionRecord:
    """subscriptions/{subscriptionId}"""
    subscription_id: str
    uid: str
    plan_id: str
    billing_period: str
    status: str
    customer_id: Optional[str] = None
    created_at: Optional[datetime] = None

    update_time: Optional[datetime] = field(default=None, compare=False, repr=False)

    @property
    def is_cancelled(self) -> bool:
        return self.status == SubscriptionState.CANCELLED.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscriptionId": self.subscription_id,
            "uid": self.uid,
            "planId": self.plan_id,
            "billingPeriod": self.billing_period,
            "status": self.status,
            "customerId": self.customer_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], update_time: Optional[datetime] = None) -> "SubscriptionRecord":
        return cls(
            subscription_id=data.get("subscriptionId", ""),
            uid=data.get("uid", ""),
            plan_id=data.get("planId", ""),
            billing_period=data.get("billingPeriod", ""),
            status=data.get("status", ""),
            customer_id=data.get("customerId"),
            created_at=to_datetime(data.get("createdAt")),
            update_time=update_time,
        )


@dataclass
class PaymentHistoryEntry:
    """users/{uid}/payments/{auto}; append-only"""
    type: PaymentType
    status: str
    plan_id: Optional[str] = None
    billing_period: Optional[str] = None
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    subscription_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "status": self.status,
            "planId": self.plan_id,
            "billingPeriod": self.billing_period,
            "paymentId": self.payment_id,
            "orderId": self.order_id,
            "subscriptionId": self.subscription_id,
            "amount": self.amount,
            "currency": self.currency,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class UserProfile:
    """
    The slice of users/{uid} this service reads.

    The profile document belongs to the identity subsystem; only the
    entitlement fields are written here, and only by trusted server code.
    """
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    plan: str = FREE_PLAN
    plan_status: Optional[str] = None
    billing_period: Optional[str] = None
    subscription_expires_at: Optional[datetime] = None
    subscription_started_at: Optional[datetime] = None
    subscription_cancelled_at: Optional[datetime] = None
    razorpay_customer_id: Optional[str] = None
    razorpay_subscription_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None

    @property
    def has_active_subscription(self) -> bool:
        return bool(self.razorpay_subscription_id) and self.plan_status == PlanStatus.ACTIVE.value

    def is_expired(self, now: datetime) -> bool:
        return self.subscription_expires_at is not None and self.subscription_expires_at < now

    @classmethod
    def from_dict(cls, uid: str, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            uid=uid,
            email=data.get("email"),
            display_name=data.get("displayName"),
            plan=data.get("plan") or FREE_PLAN,
            plan_status=data.get("planStatus"),
            billing_period=data.get("billing_period"),
            subscription_expires_at=to_datetime(data.get("subscription_expires_at")),
            subscription_started_at=to_datetime(data.get("subscription_started_at")),
            subscription_cancelled_at=to_datetime(data.get("subscription_cancelled_at")),
            razorpay_customer_id=data.get("razorpay_customer_id"),
            razorpay_subscription_id=data.get("razorpay_subscription_id"),
            razorpay_payment_id=data.get("razorpay_payment_id"),
        )
