"""
Module: budget_kernel.models.campaign_budget
Responsibility: ORM persistence for the budget and lifecycle fields of an
    advertising campaign.  Campaign content (creatives, targeting rules,
    scheduling UI) lives with the external campaign service; this row
    carries only what the custody ledger and lifecycle gate need.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    SPEND_WITHIN_BUDGET -- 0 <= budget_spent <= budget_total (CHECK).
    HOLD_MATCHES_REMAINING_BUDGET -- maintained by CampaignBudgetController,
        which moves the account hold and these fields in one transaction.

Failure modes:
    - IntegrityError (unique) on a second budget for the same campaign_id.

Audit relevance:
    released_amount and settled_at record the one-time settlement of the
    unspent reservation; a settled campaign never holds funds again.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import TimestampedBase, UUIDString
from budget_kernel.db.types import Currency, ExactMoney, Money


class CampaignStatus(str, Enum):
    """Lifecycle status of a campaign."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    PAUSED = "paused"
    REJECTED = "rejected"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ApprovalStatus(str, Enum):
    """Moderation decision recorded against the campaign."""

    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CampaignBudget(TimestampedBase):
    """
    Budget record of one campaign.

    Contract:
        Created by CampaignBudgetController.reserve_budget in DRAFT.
        Status changes only through CampaignLifecycleGate.  Every update
        is conditioned on ``version`` (optimistic concurrency).

    Guarantees:
        - remaining == budget_total - budget_spent >= 0.
        - settled_at is set at most once.
    """

    __tablename__ = "campaign_budgets"

    __table_args__ = (
        UniqueConstraint("campaign_id", name="uq_campaign_budget_campaign"),
        CheckConstraint("budget_spent >= 0", name="ck_campaign_spent_non_negative"),
        CheckConstraint(
            "budget_spent <= budget_total", name="ck_campaign_spend_within_total"
        ),
        CheckConstraint(
            "budget_daily IS NULL OR budget_daily > 0",
            name="ck_campaign_daily_positive",
        ),
        Index("idx_campaign_budget_user", "user_id"),
        Index("idx_campaign_budget_status", "status"),
    )

    campaign_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.user_id"),
        nullable=False,
    )

    budget_total: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    # Optional per-day spend cap
    budget_daily: Mapped[Decimal | None] = mapped_column(ExactMoney(), nullable=True)

    budget_spent: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=CampaignStatus.DRAFT.value,
        nullable=False,
    )

    approval_status: Mapped[str] = mapped_column(
        String(20),
        default=ApprovalStatus.NONE.value,
        nullable=False,
    )

    approval_notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    creative_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    targeting_configured: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    currency: Mapped[Currency] = mapped_column(String(3), default="USD", nullable=False)

    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    launched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Unspent reservation returned at settlement
    released_amount: Mapped[Decimal | None] = mapped_column(ExactMoney(), nullable=True)

    version: Mapped[int] = mapped_column(default=1, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<CampaignBudget {self.campaign_id} {self.status} "
            f"{self.budget_spent}/{self.budget_total}>"
        )

    @property
    def status_enum(self) -> CampaignStatus:
        return CampaignStatus(self.status)

    @property
    def remaining(self) -> Decimal:
        """Unspent reservation; equals the hold while not settled."""
        return self.budget_total - self.budget_spent

    @property
    def is_settled(self) -> bool:
        return self.settled_at is not None
