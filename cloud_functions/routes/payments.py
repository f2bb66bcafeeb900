"""
Payment API Routes for TermiVoxed

Razorpay checkout and subscription management:
- One-time orders and their verification
- Recurring subscriptions, status and cancellation
- Public pricing table
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cloud_functions.dependencies import BillingServices, call_service, get_services
from cloud_functions.middleware.auth import AuthenticatedUser, get_current_user

router = APIRouter()


# ========== Pydantic Models ==========

# Fields are optional so that missing values reach the services and get
# their specific error messages instead of a generic validation error.

class CheckoutRequest(BaseModel):
    planId: Optional[str] = None
    billingPeriod: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None


# ========== Endpoints ==========

@router.get("/plans")
async def get_plans(services: BillingServices = Depends(get_services)):
    """Public pricing table (amounts in paise)"""
    return {"success": True, "plans": services.catalog.as_public_dict()}


@router.post("/createOrder")
async def create_order(
    request: CheckoutRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    services: BillingServices = Depends(get_services),
):
    order = await call_service(
        "create order",
        services.orders.create_order,
        user.uid,
        request.planId,
        request.billingPeriod,
    )
    return {"success": True, **order.to_dict()}


@router.post("/verifyPayment")
async def verify_payment(
    request: VerifyPaymentRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    services: BillingServices = Depends(get_services),
):
    message = await call_service(
        "verify payment",
        services.verification.verify_payment,
        user.uid,
        request.razorpay_order_id,
        request.razorpay_payment_id,
        request.razorpay_signature,
    )
    return {"success": True, "message": message}


@router.post("/createSubscription")
async def create_subscription(
    request: CheckoutRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    services: BillingServices = Depends(get_services),
):
    subscription = await call_service(
        "create subscription",
        services.subscriptions.create_subscription,
        user.uid,
        request.planId,
        request.billingPeriod,
    )
    return {"success": True, **subscription.to_dict()}


@router.get("/getSubscriptionStatus")
async def get_subscription_status(
    user: AuthenticatedUser = Depends(get_current_user),
    services: BillingServices = Depends(get_services),
):
    view = await call_service(
        "get subscription status",
        services.subscriptions.get_subscription_status,
        user.uid,
    )
    return {"success": True, **view.to_dict()}


@router.post("/cancelSubscription")
async def cancel_subscription(
    user: AuthenticatedUser = Depends(get_current_user),
    services: BillingServices = Depends(get_services),
):
    message = await call_service(
        "cancel subscription",
        services.subscriptions.cancel_subscription,
        user.uid,
    )
    return {"success": True, "message": message}
