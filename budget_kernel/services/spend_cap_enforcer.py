"""
Module: budget_kernel.services.spend_cap_enforcer
Responsibility: Per-campaign daily spend records and the total/daily cap
    checks that gate every spend event.
Architecture position: Kernel > Services.  Called by
    CampaignBudgetController.process_spend inside its transaction.

Invariants enforced:
    - DailySpendRecord is exact: the additive upsert runs in the same
      transaction as the spend it records, after the campaign row has been
      locked, so concurrent spends for one campaign are counted once each.
    - "Today" is the UTC date of the injected Clock.

Failure modes:
    - BudgetExceededError: budget_spent + amount > budget_total.
    - DailyCapExceededError: budget_daily set and today_spent + amount >
      budget_daily.
    - IntegrityError: two transactions create the same day's row at once
      (retried by TransactionRunner; the retry takes the UPDATE path).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from budget_kernel.db.repository import Repository
from budget_kernel.domain.amounts import require_positive
from budget_kernel.domain.clock import Clock
from budget_kernel.domain.dtos import DailySpend
from budget_kernel.exceptions import BudgetExceededError, DailyCapExceededError
from budget_kernel.models.campaign_budget import CampaignBudget
from budget_kernel.models.daily_spend import DailySpendRecord
from budget_kernel.services.base import BaseService


class SpendCapEnforcer(BaseService):
    """
    Daily spend bookkeeping and cap enforcement.

    Contract:
        ``check_caps`` is pure with respect to the database: it only reads
        today's record.  ``record_daily_spend`` is the only writer of
        DailySpendRecord.
    """

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session, clock)
        self._records = Repository(session, DailySpendRecord)

    def record_daily_spend(
        self,
        campaign_id: UUID,
        amount: Decimal,
        spend_date: date | None = None,
    ) -> Decimal:
        """Add ``amount`` to the day's record (creating it); return the day's total."""
        amount = require_positive(amount)
        spend_date = spend_date or self.clock.today()

        rows = self._records.update_where(
            DailySpendRecord.campaign_id == campaign_id,
            DailySpendRecord.spend_date == spend_date,
            amount_spent=DailySpendRecord.amount_spent + amount,
        )
        if rows == 0:
            self._records.add(
                DailySpendRecord(
                    campaign_id=campaign_id,
                    spend_date=spend_date,
                    amount_spent=amount,
                )
            )
        return self.spent_on(campaign_id, spend_date)

    def today_spent(self, campaign_id: UUID) -> Decimal:
        return self.spent_on(campaign_id, self.clock.today())

    def spent_on(self, campaign_id: UUID, spend_date: date) -> Decimal:
        record = self._records.get_by(campaign_id=campaign_id, spend_date=spend_date)
        if record is None:
            return Decimal("0")
        return record.amount_spent

    def history(self, campaign_id: UUID, since: date | None = None) -> list[DailySpend]:
        """Daily totals in ascending date order, optionally from ``since`` on."""
        criteria = [DailySpendRecord.campaign_id == campaign_id]
        if since is not None:
            criteria.append(DailySpendRecord.spend_date >= since)
        records = self._records.list_where(
            *criteria,
            order_by=(DailySpendRecord.spend_date,),
        )
        return [DailySpend(spend_date=r.spend_date, amount_spent=r.amount_spent) for r in records]

    def check_caps(self, budget: CampaignBudget, amount: Decimal) -> Decimal:
        """
        Verify ``amount`` fits both caps; return today's spend before it.

        Raises:
            BudgetExceededError: Total budget would be exceeded.
            DailyCapExceededError: Daily cap would be exceeded.
        """
        if budget.budget_spent + amount > budget.budget_total:
            raise BudgetExceededError(
                str(budget.campaign_id),
                budget_total=budget.budget_total,
                budget_spent=budget.budget_spent,
                attempted=amount,
            )

        today_spent = self.today_spent(budget.campaign_id)
        if budget.budget_daily is not None and today_spent + amount > budget.budget_daily:
            raise DailyCapExceededError(
                str(budget.campaign_id),
                daily_limit=budget.budget_daily,
                today_spent=today_spent,
                attempted=amount,
            )
        return today_spent
