"""
TermiVoxed Billing Test Suite

Tests for:
- Plan catalog and billing date arithmetic
- Razorpay signatures
- Order, subscription, verification and account services
- Webhook processing
- HTTP endpoints

Run tests with:
    pytest tests/ -v
"""
