"""
Budget forecast math.

Pure functions over plain values: no ORM, no clock, no I/O.  The
BudgetForecaster selector gathers the inputs and calls these.
"""

import math
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

INFINITE_DAYS = Decimal("Infinity")
_CENTS = Decimal("0.01")


class ScheduleStatus(str, Enum):
    NO_SCHEDULE = "no_schedule"
    ON_SCHEDULE = "on_schedule"
    EARLY_EXHAUSTION = "early_exhaustion"
    EXTENDED_RUNWAY = "extended_runway"


class ForecastConfidence(str, Enum):
    UNKNOWN = "unknown"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


MEDIUM_CONFIDENCE_DAYS = 7
HIGH_CONFIDENCE_DAYS = 14


def days_active(launched_at: datetime | None, now: datetime) -> int:
    """Whole days elapsed since launch; 0 if never launched."""
    if launched_at is None:
        return 0
    return max(0, (now - launched_at).days)


def daily_burn_rate(budget_spent: Decimal, active_days: int) -> Decimal:
    return budget_spent / max(1, active_days)


def estimated_days_remaining(remaining: Decimal, burn_rate: Decimal) -> Decimal:
    if burn_rate <= 0:
        return INFINITE_DAYS
    return remaining / burn_rate


def projected_exhaustion_date(today: date, days_remaining: Decimal) -> date | None:
    """
    ``today`` plus the remaining days, rounded up to a whole day.

    None when the runway is infinite or past the calendar's end.
    """
    if not days_remaining.is_finite():
        return None
    whole_days = math.ceil(days_remaining)
    if whole_days > (date.max - today).days:
        return None
    return today + timedelta(days=whole_days)


def schedule_status(
    exhaustion: date | None,
    end_date: date | None,
    tolerance_days: int = 0,
) -> ScheduleStatus:
    """
    Compare projected exhaustion with the scheduled end.

    An infinite runway against a scheduled end is EXTENDED_RUNWAY: the
    budget will not be used up by the end date.
    """
    if end_date is None:
        return ScheduleStatus.NO_SCHEDULE
    if exhaustion is None:
        return ScheduleStatus.EXTENDED_RUNWAY
    delta = (exhaustion - end_date).days
    if delta < -tolerance_days:
        return ScheduleStatus.EARLY_EXHAUSTION
    if delta > tolerance_days:
        return ScheduleStatus.EXTENDED_RUNWAY
    return ScheduleStatus.ON_SCHEDULE


def confidence_for(sample_days: int, minimum_sample_days: int) -> ForecastConfidence:
    if sample_days < minimum_sample_days:
        return ForecastConfidence.UNKNOWN
    if sample_days < MEDIUM_CONFIDENCE_DAYS:
        return ForecastConfidence.LOW
    if sample_days < HIGH_CONFIDENCE_DAYS:
        return ForecastConfidence.MEDIUM
    return ForecastConfidence.HIGH


def roi_figures(spent: Decimal, revenue: Decimal) -> dict[str, Decimal | bool]:
    """
    Return on investment of a campaign.

    roi_percent and roas are 0 when nothing has been spent.
    """
    profit = revenue - spent
    if spent > 0:
        roi_percent = (profit / spent * 100).quantize(_CENTS, rounding=ROUND_HALF_UP)
        roas = (revenue / spent).quantize(_CENTS, rounding=ROUND_HALF_UP)
    else:
        roi_percent = Decimal("0.00")
        roas = Decimal("0.00")
    return {
        "profit": profit,
        "roi_percent": roi_percent,
        "roas": roas,
        "break_even": revenue >= spent,
    }
