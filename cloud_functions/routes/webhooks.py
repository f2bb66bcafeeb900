"""
Razorpay webhook endpoint.

Configure in Razorpay Dashboard > Settings > Webhooks with the events
payment.captured, payment.failed and subscription.* pointing here.
Responses are plain text; any non-2xx makes Razorpay redeliver.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from cloud_functions.dependencies import BillingServices, get_services
from subscription.errors import BillingError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/razorpayWebhook", response_class=PlainTextResponse)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    x_razorpay_event_id: Optional[str] = Header(None),
    services: BillingServices = Depends(get_services),
):
    # The signature covers the exact bytes sent, so read them before any parsing
    body = await request.body()

    try:
        message = await run_in_threadpool(
            services.webhooks.handle,
            body,
            x_razorpay_signature,
            x_razorpay_event_id,
        )
    except BillingError as e:
        return PlainTextResponse(e.message, status_code=e.status_code)
    except Exception:
        logger.exception("Webhook error")
        return PlainTextResponse("Webhook processing failed", status_code=500)

    return PlainTextResponse(message)
