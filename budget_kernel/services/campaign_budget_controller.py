"""
Module: budget_kernel.services.campaign_budget_controller
Responsibility: Reservation, adjustment, spend processing and settlement
    for one campaign's budget.  Keeps the campaign's budget fields and the
    owner's account hold moving together.
Architecture position: Kernel > Services.  Composes AccountLedger and
    SpendCapEnforcer; called by CampaignLifecycleGate and the facade.

Invariants enforced:
    SPEND_WITHIN_BUDGET -- process_spend checks budget_spent + amount <=
        budget_total against the locked campaign row before converting.
    HOLD_MATCHES_REMAINING_BUDGET -- every change to budget_total or
        budget_spent is paired with the matching hold/release/convert on
        the account, in the same transaction.
    Optimistic concurrency -- campaign rows are read with SELECT ... FOR
        UPDATE where the dialect supports it, and every UPDATE is
        conditioned on the version that was read.  A mismatch raises
        ConcurrencyConflictError, which TransactionRunner retries.

Failure modes:
    - CampaignNotFoundError: no budget for campaign_id.
    - InvalidStateError: operation illegal for the campaign status.
    - ValidationError: bad amount, wrong owner, restricted field while
      active, new total below spend.
    - BudgetExceededError / DailyCapExceededError from the caps.
    - InsufficientFundsError / OverReleaseError from the ledger.

Audit relevance:
    Emits budget_reserved, budget_adjusted, spend_processed and
    budget_settled log events; the ledger writes the matching journal rows
    tagged with campaign_id.
"""

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from budget_kernel.db.repository import Repository
from budget_kernel.db.types import is_currency_code
from budget_kernel.domain.amounts import require_non_negative, require_positive
from budget_kernel.domain.clock import Clock, ensure_utc
from budget_kernel.domain.dtos import (
    AffordabilityCheck,
    BudgetAdjustment,
    BudgetSnapshot,
    SettlementResult,
    SpendResult,
)
from budget_kernel.domain.lifecycle import (
    DRAFT,
    SETTLEMENT_STATES,
    SPENDABLE_STATES,
    restricted_changes,
)
from budget_kernel.exceptions import (
    CampaignNotFoundError,
    ConcurrencyConflictError,
    InvalidStateError,
    ValidationError,
)
from budget_kernel.logging_config import get_logger
from budget_kernel.models.campaign_budget import ApprovalStatus, CampaignBudget, CampaignStatus
from budget_kernel.services.account_ledger import AccountLedger
from budget_kernel.services.base import BaseService
from budget_kernel.services.spend_cap_enforcer import SpendCapEnforcer

logger = get_logger("services.campaign_budget_controller")


def validate_schedule(start_date: date | None, end_date: date | None) -> None:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValidationError(
            f"end_date {end_date} is before start_date {start_date}",
            field="end_date",
        )


def validate_currency(currency: str) -> None:
    if not is_currency_code(currency):
        raise ValidationError(f"Invalid currency code: {currency!r}", field="currency")


def validate_daily_cap(budget_daily: Decimal | None) -> Decimal | None:
    if budget_daily is None:
        return None
    return require_positive(budget_daily, field="budget_daily")


class CampaignBudgetController(BaseService):
    """
    Budget operations for a single campaign.

    Contract:
        Every method locks the campaign row first, validates against the
        locked state, then moves account funds and campaign fields together.

    Guarantees:
        - A rejected call changes nothing (errors are raised before any
          write, or the transaction rolls back).
        - settle releases budget_total - budget_spent exactly once.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        ledger: AccountLedger,
        caps: SpendCapEnforcer,
    ):
        super().__init__(session, clock)
        self.ledger = ledger
        self.caps = caps
        self._budgets = Repository(session, CampaignBudget)

    # Row access

    def load(self, campaign_id: UUID, for_update: bool = True) -> CampaignBudget:
        if for_update:
            budget = self._budgets.get_for_update(campaign_id=campaign_id)
        else:
            budget = self._budgets.get_by(campaign_id=campaign_id)
        if budget is None:
            raise CampaignNotFoundError(str(campaign_id))
        return budget

    def snapshot(self, campaign_id: UUID) -> BudgetSnapshot:
        return BudgetSnapshot.from_model(self.load(campaign_id, for_update=False))

    def update_campaign(self, budget: CampaignBudget, **values: Any) -> CampaignBudget:
        """
        Version-checked UPDATE of ``budget``; returns the refreshed row.

        Raises:
            ConcurrencyConflictError: The row changed since it was read.
        """
        rows = self._budgets.update_where(
            CampaignBudget.id == budget.id,
            CampaignBudget.version == budget.version,
            version=budget.version + 1,
            **values,
        )
        if rows == 0:
            raise ConcurrencyConflictError("CampaignBudget", str(budget.campaign_id))
        return self.load(budget.campaign_id, for_update=False)

    # Reservation

    def reserve_budget(
        self,
        user_id: UUID,
        campaign_id: UUID,
        amount: Decimal,
        budget_daily: Decimal | None = None,
        currency: str = "USD",
        start_date: date | None = None,
        end_date: date | None = None,
        idempotency_key: str | None = None,
    ) -> BudgetSnapshot:
        """
        Hold ``amount`` for a new campaign budget.

        Valid when the campaign has no budget yet, or has a draft budget
        with nothing reserved.

        Raises:
            InvalidStateError: Budget exists beyond an empty draft.
            InsufficientFundsError: available < amount (nothing is created).
        """
        amount = require_positive(amount)
        budget_daily = validate_daily_cap(budget_daily)
        validate_currency(currency)
        validate_schedule(start_date, end_date)

        existing = self._budgets.get_for_update(campaign_id=campaign_id)
        if existing is not None:
            self._require_owner(existing, user_id)
            if existing.status != DRAFT or existing.budget_total != 0:
                raise InvalidStateError(
                    f"Campaign {campaign_id} already has a budget "
                    f"({existing.status}, total {existing.budget_total})",
                    current_state=existing.status,
                    requested="reserve_budget",
                )

        self.ledger.hold(
            user_id,
            amount,
            reason=f"Budget reservation for campaign {campaign_id}",
            campaign_id=campaign_id,
            idempotency_key=idempotency_key,
        )

        if existing is None:
            budget = self._budgets.add(
                CampaignBudget(
                    campaign_id=campaign_id,
                    user_id=user_id,
                    budget_total=amount,
                    budget_daily=budget_daily,
                    budget_spent=Decimal("0"),
                    status=CampaignStatus.DRAFT.value,
                    approval_status=ApprovalStatus.NONE.value,
                    creative_count=0,
                    targeting_configured=False,
                    currency=currency,
                    start_date=start_date,
                    end_date=end_date,
                    version=1,
                )
            )
        else:
            budget = self.update_campaign(
                existing,
                budget_total=amount,
                budget_spent=Decimal("0"),
                budget_daily=budget_daily,
                currency=currency,
                start_date=start_date,
                end_date=end_date,
            )

        logger.info(
            "budget_reserved",
            extra={
                "campaign_id": str(campaign_id),
                "user_id": str(user_id),
                "amount": str(amount),
                "budget_daily": str(budget_daily) if budget_daily is not None else None,
            },
        )
        return BudgetSnapshot.from_model(budget)

    def adjust_budget(
        self,
        user_id: UUID,
        campaign_id: UUID,
        new_amount: Decimal,
        idempotency_key: str | None = None,
    ) -> BudgetAdjustment:
        """
        Change budget_total, holding or releasing the difference.

        Raises:
            ValidationError: Wrong owner, campaign active, or new_amount
                below budget_spent.
            InvalidStateError: Campaign completed or archived.
        """
        new_amount = require_non_negative(new_amount, field="new_amount")
        budget = self.load(campaign_id)
        self._require_owner(budget, user_id)
        self._require_not_settling(budget, "adjust_budget")

        if restricted_changes(budget.status, {"budget_total"}):
            raise ValidationError(
                "budget_total cannot change while the campaign is active",
                field="budget_total",
            )
        if new_amount < budget.budget_spent:
            raise ValidationError(
                f"New budget {new_amount} is below amount already spent "
                f"{budget.budget_spent}",
                field="new_amount",
            )

        previous_total = budget.budget_total
        delta = new_amount - previous_total
        held = Decimal("0")
        released = Decimal("0")
        reason = f"Budget adjustment for campaign {campaign_id}"

        if delta > 0:
            self.ledger.hold(
                user_id, delta, reason, campaign_id=campaign_id, idempotency_key=idempotency_key
            )
            held = delta
        elif delta < 0:
            released = min(-delta, budget.budget_total - budget.budget_spent)
            if released > 0:
                self.ledger.release(
                    user_id,
                    released,
                    reason,
                    campaign_id=campaign_id,
                    idempotency_key=idempotency_key,
                )

        if delta != 0:
            budget = self.update_campaign(budget, budget_total=new_amount)

        logger.info(
            "budget_adjusted",
            extra={
                "campaign_id": str(campaign_id),
                "previous_total": str(previous_total),
                "new_total": str(new_amount),
                "held": str(held),
                "released": str(released),
            },
        )
        return BudgetAdjustment(
            campaign_id=campaign_id,
            previous_total=previous_total,
            new_total=new_amount,
            held=held,
            released=released,
            budget=BudgetSnapshot.from_model(budget),
        )

    def update_daily_cap(
        self,
        campaign_id: UUID,
        budget_daily: Decimal | None,
    ) -> BudgetSnapshot:
        """Set (positive) or clear (None) the daily cap."""
        budget_daily = validate_daily_cap(budget_daily)
        budget = self.load(campaign_id)
        self._require_not_settling(budget, "update_daily_cap")
        budget = self.update_campaign(budget, budget_daily=budget_daily)
        logger.info(
            "daily_cap_updated",
            extra={
                "campaign_id": str(campaign_id),
                "budget_daily": str(budget_daily) if budget_daily is not None else None,
            },
        )
        return BudgetSnapshot.from_model(budget)

    # Spend

    def process_spend(
        self,
        campaign_id: UUID,
        amount: Decimal,
        reason: str,
        idempotency_key: str | None = None,
    ) -> SpendResult:
        """
        Convert ``amount`` of the campaign's hold into realized spend.

        Steps (one transaction): cap checks, convert held to spent on the
        account, version-checked budget_spent increment, daily upsert.

        Raises:
            InvalidStateError: Campaign not active or paused.
            BudgetExceededError / DailyCapExceededError.
        """
        amount = require_positive(amount)
        budget = self.load(campaign_id)
        if budget.status not in SPENDABLE_STATES:
            raise InvalidStateError(
                f"Campaign {campaign_id} cannot accrue spend in status '{budget.status}'",
                current_state=budget.status,
                requested="process_spend",
            )

        today = self.clock.today()
        self.caps.check_caps(budget, amount)

        account = self.ledger.convert_held_to_spent(
            budget.user_id,
            amount,
            reason,
            campaign_id=campaign_id,
            idempotency_key=idempotency_key,
        )
        budget = self.update_campaign(budget, budget_spent=budget.budget_spent + amount)
        today_spent = self.caps.record_daily_spend(campaign_id, amount, today)

        logger.info(
            "spend_processed",
            extra={
                "campaign_id": str(campaign_id),
                "amount": str(amount),
                "budget_spent": str(budget.budget_spent),
                "budget_total": str(budget.budget_total),
                "today_spent": str(today_spent),
                "reason": reason,
            },
        )
        return SpendResult(
            campaign_id=campaign_id,
            amount=amount,
            budget_spent=budget.budget_spent,
            budget_remaining=budget.budget_total - budget.budget_spent,
            today_spent=today_spent,
            spend_date=today,
            account=account,
        )

    # Settlement

    def settle(self, user_id: UUID, campaign_id: UUID) -> SettlementResult:
        """
        Release the unspent reservation of a completed/archived campaign.

        Raises:
            ValidationError: Wrong owner.
            InvalidStateError: Campaign not completed or archived.
        """
        budget = self.load(campaign_id)
        self._require_owner(budget, user_id)
        return self.settle_campaign(budget)

    def settle_campaign(self, budget: CampaignBudget) -> SettlementResult:
        """Settle an already-locked campaign row.  Idempotent."""
        if budget.status not in SETTLEMENT_STATES:
            raise InvalidStateError(
                f"Campaign {budget.campaign_id} can only be settled once completed "
                f"or archived (status '{budget.status}')",
                current_state=budget.status,
                requested="settle",
            )

        if budget.settled_at is not None:
            return SettlementResult(
                campaign_id=budget.campaign_id,
                user_id=budget.user_id,
                released=Decimal("0"),
                settled_at=ensure_utc(budget.settled_at),
                already_settled=True,
            )

        remaining = budget.budget_total - budget.budget_spent
        if remaining > 0:
            self.ledger.release(
                budget.user_id,
                remaining,
                reason=f"Settlement of campaign {budget.campaign_id}",
                campaign_id=budget.campaign_id,
            )

        settled_at = self.clock.now_utc()
        self.update_campaign(budget, settled_at=settled_at, released_amount=remaining)

        logger.info(
            "budget_settled",
            extra={
                "campaign_id": str(budget.campaign_id),
                "user_id": str(budget.user_id),
                "released": str(remaining),
                "budget_spent": str(budget.budget_spent),
            },
        )
        return SettlementResult(
            campaign_id=budget.campaign_id,
            user_id=budget.user_id,
            released=remaining,
            settled_at=settled_at,
            already_settled=False,
        )

    # Read helpers

    def check_affordability(self, user_id: UUID, amount: Decimal) -> AffordabilityCheck:
        """Can ``user_id`` reserve ``amount`` right now?"""
        amount = require_positive(amount)
        account = self.ledger.get_account(user_id)
        available = account.balance - account.balance_on_hold
        return AffordabilityCheck(
            user_id=user_id,
            can_afford=available >= amount and not account.is_archived,
            available=available,
            required=amount,
            shortage=max(Decimal("0"), amount - available),
        )

    @staticmethod
    def _require_owner(budget: CampaignBudget, user_id: UUID) -> None:
        if budget.user_id != user_id:
            raise ValidationError(
                f"Campaign {budget.campaign_id} does not belong to user {user_id}",
                field="user_id",
            )

    @staticmethod
    def _require_not_settling(budget: CampaignBudget, operation: str) -> None:
        if budget.status in SETTLEMENT_STATES:
            raise InvalidStateError(
                f"Campaign {budget.campaign_id} is {budget.status}; "
                f"{operation} is no longer allowed",
                current_state=budget.status,
                requested=operation,
            )
