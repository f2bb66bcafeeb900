"""
Calendar arithmetic for subscription periods.

Adding N months keeps the day of month and clamps to the last day of the
target month, so Jan 31 + 1 month is Feb 28/29 and Feb 29 + 1 year is Feb 28
in a non-leap year. All values are aware UTC datetimes.
"""

import calendar
from datetime import datetime, timezone

from subscription.models import BillingPeriod


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def add_billing_period(start: datetime, period: BillingPeriod) -> datetime:
    """Expiry for a one-time purchase made at `start`"""
    if period == BillingPeriod.YEARLY:
        return add_months(start, 12)
    return add_months(start, 1)


def from_unix_seconds(seconds: int) -> datetime:
    """Razorpay reports period boundaries as Unix epoch seconds"""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
