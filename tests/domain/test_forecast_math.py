"""Tests for the pure forecast and ROI math (budget_kernel.domain.forecast)."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from budget_kernel.domain import forecast
from budget_kernel.domain.forecast import (
    INFINITE_DAYS,
    ForecastConfidence,
    ScheduleStatus,
)


class TestBurnRate:

    def test_days_active_never_launched(self):
        assert forecast.days_active(None, datetime(2024, 1, 10, tzinfo=timezone.utc)) == 0

    def test_days_active_whole_days(self):
        launched = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        now = launched + timedelta(days=10, hours=5)
        assert forecast.days_active(launched, now) == 10

    def test_burn_rate_uses_at_least_one_day(self):
        assert forecast.daily_burn_rate(Decimal("40"), 0) == Decimal("40")

    def test_burn_rate(self):
        assert forecast.daily_burn_rate(Decimal("400"), 10) == Decimal("40")

    def test_days_remaining(self):
        assert forecast.estimated_days_remaining(Decimal("600"), Decimal("40")) == Decimal("15")

    def test_zero_burn_is_infinite(self):
        assert forecast.estimated_days_remaining(Decimal("600"), Decimal("0")) == INFINITE_DAYS


class TestExhaustion:

    def test_whole_days(self):
        today = date(2024, 1, 11)
        assert forecast.projected_exhaustion_date(today, Decimal("15")) == date(2024, 1, 26)

    def test_partial_day_rounds_up(self):
        today = date(2024, 1, 11)
        assert forecast.projected_exhaustion_date(today, Decimal("2.1")) == date(2024, 1, 14)

    def test_infinite_has_no_date(self):
        assert forecast.projected_exhaustion_date(date(2024, 1, 1), INFINITE_DAYS) is None

    def test_beyond_calendar_has_no_date(self):
        assert forecast.projected_exhaustion_date(date(2024, 1, 1), Decimal("1e9")) is None


class TestScheduleStatus:

    @pytest.mark.parametrize(
        "exhaustion, end_date, expected",
        [
            (date(2024, 1, 26), None, ScheduleStatus.NO_SCHEDULE),
            (date(2024, 1, 26), date(2024, 1, 31), ScheduleStatus.EARLY_EXHAUSTION),
            (date(2024, 2, 5), date(2024, 1, 31), ScheduleStatus.EXTENDED_RUNWAY),
            (date(2024, 1, 31), date(2024, 1, 31), ScheduleStatus.ON_SCHEDULE),
            (None, date(2024, 1, 31), ScheduleStatus.EXTENDED_RUNWAY),
        ],
    )
    def test_status(self, exhaustion, end_date, expected):
        assert forecast.schedule_status(exhaustion, end_date) == expected

    def test_tolerance_widens_on_schedule(self):
        status = forecast.schedule_status(date(2024, 1, 29), date(2024, 1, 31), tolerance_days=2)
        assert status == ScheduleStatus.ON_SCHEDULE


class TestConfidence:

    @pytest.mark.parametrize(
        "sample_days, expected",
        [
            (0, ForecastConfidence.UNKNOWN),
            (2, ForecastConfidence.UNKNOWN),
            (3, ForecastConfidence.LOW),
            (6, ForecastConfidence.LOW),
            (7, ForecastConfidence.MEDIUM),
            (13, ForecastConfidence.MEDIUM),
            (14, ForecastConfidence.HIGH),
        ],
    )
    def test_bands(self, sample_days, expected):
        assert forecast.confidence_for(sample_days, minimum_sample_days=3) == expected


class TestRoi:

    def test_profitable(self):
        figures = forecast.roi_figures(Decimal("200"), Decimal("500"))
        assert figures["profit"] == Decimal("300")
        assert figures["roi_percent"] == Decimal("150.00")
        assert figures["roas"] == Decimal("2.50")
        assert figures["break_even"] is True

    def test_loss(self):
        figures = forecast.roi_figures(Decimal("300"), Decimal("100"))
        assert figures["roi_percent"] == Decimal("-66.67")
        assert figures["break_even"] is False

    def test_nothing_spent(self):
        figures = forecast.roi_figures(Decimal("0"), Decimal("50"))
        assert figures["roi_percent"] == Decimal("0.00")
        assert figures["roas"] == Decimal("0.00")
        assert figures["break_even"] is True
