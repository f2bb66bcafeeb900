"""
TermiVoxed Billing API

FastAPI application exposing the payment endpoints the dashboard calls
(createOrder, verifyPayment, createSubscription, ...) and the Razorpay webhook.
"""
