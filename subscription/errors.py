"""
Billing Errors

Every error raised by the billing services carries the HTTP status the API
layer should answer with. Messages are returned to the caller verbatim.
"""


class BillingError(Exception):
    """Base class for billing failures"""
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(BillingError):
    """Caller supplied missing or malformed input"""
    status_code = 400


class InvalidPlanError(InvalidRequestError):
    """Plan identifier is not in the catalog"""

    def __init__(self, message: str = "Invalid plan"):
        super().__init__(message)


class PaymentVerificationError(InvalidRequestError):
    """Checkout signature did not match"""

    def __init__(self, message: str = "Payment verification failed"):
        super().__init__(message)


class WebhookSignatureError(InvalidRequestError):
    """Webhook signature missing or invalid"""


class ForbiddenError(BillingError):
    status_code = 403


class NotFoundError(BillingError):
    status_code = 404


class ConflictError(BillingError):
    """A concurrent writer changed the record between read and write"""
    status_code = 409


class ConfigurationError(BillingError):
    """Server side configuration is missing"""
    status_code = 500


class PaymentGatewayError(BillingError):
    """Razorpay rejected the call or could not be reached"""
    status_code = 500
