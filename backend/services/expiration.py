"""Subscription expiration dates.

Two sources, in order of precedence:
1. The period end Stripe reports on the subscription (billing-cycle truth).
2. A fixed period added to a reference instant, using calendar months:
   monthly +1 month, quarterly +3 months, annual +1 year. Unknown plans use
   the monthly rule.

Month arithmetic keeps the day of month and clamps it to the last day of the
target month (Jan 31 + 1 month -> Feb 28/29).
"""
import calendar
from datetime import datetime, timezone
from typing import Any, Optional

from models import PlanTier

PLAN_PERIOD_MONTHS = {
    PlanTier.MONTHLY: 1,
    PlanTier.QUARTERLY: 3,
    PlanTier.ANNUAL: 12,
}


def add_months(reference: datetime, months: int) -> datetime:
    month = reference.month + months
    year = reference.year + (month - 1) // 12
    month = (month - 1) % 12 + 1
    day = min(reference.day, calendar.monthrange(year, month)[1])
    return reference.replace(year=year, month=month, day=day)


def calculate_expiration_date(plan: Optional[PlanTier], reference: datetime) -> datetime:
    months = PLAN_PERIOD_MONTHS.get(plan, PLAN_PERIOD_MONTHS[PlanTier.MONTHLY])
    return add_months(reference, months)


def resolve_expiration_date(
    plan: Optional[PlanTier],
    reference: datetime,
    period_end: Optional[datetime] = None,
) -> datetime:
    if period_end is not None:
        return period_end
    return calculate_expiration_date(plan, reference)


def from_unix_timestamp(value: Any) -> Optional[datetime]:
    """Stripe epoch seconds -> aware UTC datetime. None for missing or invalid values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
