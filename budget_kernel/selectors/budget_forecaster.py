"""
Module: budget_kernel.selectors.budget_forecaster
Responsibility: Advisory burn-rate and exhaustion projections for a
    campaign, and ROI against revenue reported by the performance pipeline.
Architecture position: Kernel > Selectors.  Gathers inputs from
    CampaignBudget and DailySpendRecord rows and delegates the arithmetic to
    budget_kernel.domain.forecast.

Invariants enforced:
    - Read-only: never mutates state.
    - Sparse history is tolerated: below the minimum sample the forecast is
      still computed but its confidence is reported as unknown.

Failure modes:
    - CampaignNotFoundError.
    - ValidationError: negative revenue.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from budget_kernel.domain import forecast as forecast_math
from budget_kernel.domain.amounts import require_non_negative
from budget_kernel.domain.clock import Clock, ensure_utc
from budget_kernel.domain.dtos import BudgetForecast, RoiSummary
from budget_kernel.exceptions import CampaignNotFoundError
from budget_kernel.models.campaign_budget import CampaignBudget
from budget_kernel.models.daily_spend import DailySpendRecord
from budget_kernel.selectors.base import BaseSelector

DEFAULT_MINIMUM_SAMPLE_DAYS = 3


class BudgetForecaster(BaseSelector):
    """
    Burn-rate projection for one campaign.

    Contract:
        ``forecast`` uses whole days since launch (at least 1) as the burn
        window and days with recorded spend as the sample size.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        minimum_sample_days: int = DEFAULT_MINIMUM_SAMPLE_DAYS,
        schedule_tolerance_days: int = 0,
    ):
        super().__init__(session)
        self.clock = clock
        self.minimum_sample_days = minimum_sample_days
        self.schedule_tolerance_days = schedule_tolerance_days

    def forecast(self, campaign_id: UUID) -> BudgetForecast:
        budget = self._budget(campaign_id)
        now = self.clock.now_utc()
        today = self.clock.today()

        active_days = forecast_math.days_active(ensure_utc(budget.launched_at), now)
        burn_rate = forecast_math.daily_burn_rate(budget.budget_spent, active_days)
        remaining = budget.budget_total - budget.budget_spent
        days_remaining = forecast_math.estimated_days_remaining(remaining, burn_rate)
        exhaustion = forecast_math.projected_exhaustion_date(today, days_remaining)
        status = forecast_math.schedule_status(
            exhaustion, budget.end_date, self.schedule_tolerance_days
        )
        sample_days = self._sample_days(campaign_id)

        return BudgetForecast(
            campaign_id=campaign_id,
            budget_total=budget.budget_total,
            budget_spent=budget.budget_spent,
            remaining=remaining,
            days_active=active_days,
            daily_burn_rate=burn_rate,
            estimated_days_remaining=days_remaining,
            projected_exhaustion_date=exhaustion,
            end_date=budget.end_date,
            schedule_status=status.value,
            will_exceed_schedule=status
            in (
                forecast_math.ScheduleStatus.EARLY_EXHAUSTION,
                forecast_math.ScheduleStatus.EXTENDED_RUNWAY,
            ),
            confidence=forecast_math.confidence_for(sample_days, self.minimum_sample_days).value,
            sample_days=sample_days,
        )

    def roi(self, campaign_id: UUID, revenue: Decimal) -> RoiSummary:
        revenue = require_non_negative(revenue, field="revenue")
        budget = self._budget(campaign_id)
        figures = forecast_math.roi_figures(budget.budget_spent, revenue)
        return RoiSummary(
            campaign_id=campaign_id,
            revenue=revenue,
            spent=budget.budget_spent,
            profit=figures["profit"],
            roi_percent=figures["roi_percent"],
            roas=figures["roas"],
            break_even=figures["break_even"],
        )

    def _budget(self, campaign_id: UUID) -> CampaignBudget:
        budget = self.session.execute(
            select(CampaignBudget).where(CampaignBudget.campaign_id == campaign_id)
        ).scalar_one_or_none()
        if budget is None:
            raise CampaignNotFoundError(str(campaign_id))
        return budget

    def _sample_days(self, campaign_id: UUID) -> int:
        stmt = select(func.count(DailySpendRecord.id)).where(
            DailySpendRecord.campaign_id == campaign_id
        )
        return self.session.execute(stmt).scalar_one()
