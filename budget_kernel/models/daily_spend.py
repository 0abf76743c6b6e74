"""
Module: budget_kernel.models.daily_spend
Responsibility: ORM persistence for per-campaign, per-calendar-day spend
    totals used to enforce the optional daily cap and to feed forecasts.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one row per (campaign_id, spend_date) (UNIQUE constraint).
    - amount_spent > 0; a row exists only once something was spent that day.

Failure modes:
    - IntegrityError (unique) when two writers create the same day's row
      concurrently.  TransactionRunner retries; the retry takes the UPDATE
      path.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import TimestampedBase, UUIDString
from budget_kernel.db.types import Money


class DailySpendRecord(TimestampedBase):
    """
    Spend accumulated by one campaign on one UTC calendar day.

    Contract:
        Written only by SpendCapEnforcer.record_daily_spend, in the same
        transaction as the spend it records.
    """

    __tablename__ = "daily_spend_records"

    __table_args__ = (
        UniqueConstraint("campaign_id", "spend_date", name="uq_daily_spend_campaign_date"),
        CheckConstraint("amount_spent > 0", name="ck_daily_spend_positive"),
        Index("idx_daily_spend_date", "spend_date"),
    )

    campaign_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("campaign_budgets.campaign_id"),
        nullable=False,
    )

    spend_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount_spent: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    def __repr__(self) -> str:
        return f"<DailySpendRecord {self.campaign_id} {self.spend_date} {self.amount_spent}>"
