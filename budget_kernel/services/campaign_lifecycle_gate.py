"""
Module: budget_kernel.services.campaign_lifecycle_gate
Responsibility: Applies campaign status transitions from the lifecycle
    table in budget_kernel.domain.lifecycle, evaluates their guards, and
    triggers settlement on completion and archival.
Architecture position: Kernel > Services.  Composes
    CampaignBudgetController; called by the budget_services facade.

Invariants enforced:
    - Only transitions listed in CAMPAIGN_WORKFLOW are applied.
    - Transitions into completed/archived settle the campaign in the same
      transaction, so no unsettled campaign is ever terminal after commit.
    - budget_total, start_date and currency are not editable while active.

Failure modes:
    - InvalidStateError: illegal transition, failed guard, edit of a
      completed/archived campaign.
    - ValidationError: restricted field edit while active, malformed edit.
    - CampaignNotFoundError.

Audit relevance:
    Every status change emits campaign_transitioned with the previous and
    new status; settlement emits budget_settled.
"""

from datetime import date, timedelta
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from budget_kernel.db.repository import Repository
from budget_kernel.domain.clock import Clock
from budget_kernel.domain.dtos import BudgetSnapshot, CampaignTransition
from budget_kernel.domain.lifecycle import (
    COMPLETED,
    PENDING_APPROVAL,
    SETTLEMENT_STATES,
    Guard,
    enforce_guards,
    failed_launch_guards,
    failed_resume_guards,
    resolve_transition,
    restricted_changes,
)
from budget_kernel.exceptions import InvalidStateError, ValidationError
from budget_kernel.logging_config import get_logger
from budget_kernel.models.campaign_budget import ApprovalStatus, CampaignBudget
from budget_kernel.services.base import BaseService
from budget_kernel.services.campaign_budget_controller import (
    CampaignBudgetController,
    validate_currency,
    validate_schedule,
)

logger = get_logger("services.campaign_lifecycle_gate")

DEFAULT_ARCHIVE_AFTER_DAYS = 90


class CampaignLifecycleGate(BaseService):
    """
    Campaign state machine executor.

    Contract:
        Each public transition method locks the campaign, resolves the
        transition for its action from the current status, checks guards,
        applies the status change with a version-checked UPDATE and, for
        settling transitions, settles.
    """

    def __init__(self, session: Session, clock: Clock, controller: CampaignBudgetController):
        super().__init__(session, clock)
        self.controller = controller
        self._budgets = Repository(session, CampaignBudget)

    def submit_for_approval(self, campaign_id: UUID) -> CampaignTransition:
        return self._transition(
            campaign_id,
            "submit",
            approval_status=ApprovalStatus.PENDING.value,
        )

    def record_review(
        self,
        campaign_id: UUID,
        approved: bool,
        notes: str | None = None,
    ) -> CampaignTransition:
        """
        Record the moderation decision for a pending campaign.

        Approval leaves the status at pending_approval (launch is a separate
        step); rejection moves the campaign to rejected.
        """
        budget = self.controller.load(campaign_id)
        if budget.status != PENDING_APPROVAL or budget.approval_status != ApprovalStatus.PENDING.value:
            raise InvalidStateError(
                f"Campaign {campaign_id} is not awaiting review "
                f"(status '{budget.status}', approval '{budget.approval_status}')",
                current_state=budget.status,
                requested="record_review",
            )

        if not approved:
            return self._apply(
                budget,
                "reject",
                approval_status=ApprovalStatus.REJECTED.value,
                approval_notes=notes,
            )

        updated = self.controller.update_campaign(
            budget,
            approval_status=ApprovalStatus.APPROVED.value,
            approval_notes=notes,
        )
        logger.info(
            "campaign_reviewed",
            extra={"campaign_id": str(campaign_id), "approved": True},
        )
        return CampaignTransition(
            campaign_id=campaign_id,
            action="approve",
            previous_status=budget.status,
            status=updated.status,
            budget=BudgetSnapshot.from_model(updated),
        )

    def update_details(
        self,
        campaign_id: UUID,
        creative_count: int | None = None,
        targeting_configured: bool | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        currency: str | None = None,
    ) -> BudgetSnapshot:
        """
        Edit the lifecycle-relevant campaign fields.

        Raises:
            InvalidStateError: Campaign completed or archived.
            ValidationError: start_date/currency change while active, or
                malformed values.
        """
        budget = self.controller.load(campaign_id)
        if budget.status in SETTLEMENT_STATES:
            raise InvalidStateError(
                f"Campaign {campaign_id} is {budget.status} and can no longer be edited",
                current_state=budget.status,
                requested="update_details",
            )

        values: dict[str, Any] = {}
        if creative_count is not None:
            if creative_count < 0:
                raise ValidationError("creative_count must not be negative", field="creative_count")
            values["creative_count"] = creative_count
        if targeting_configured is not None:
            values["targeting_configured"] = targeting_configured
        if currency is not None and currency != budget.currency:
            validate_currency(currency)
            values["currency"] = currency
        if start_date is not None and start_date != budget.start_date:
            values["start_date"] = start_date
        if end_date is not None:
            values["end_date"] = end_date

        restricted = restricted_changes(budget.status, set(values))
        if restricted:
            raise ValidationError(
                f"Cannot change {', '.join(restricted)} while the campaign is active",
                field=restricted[0],
            )

        validate_schedule(
            values.get("start_date", budget.start_date),
            values.get("end_date", budget.end_date),
        )
        if not values:
            return BudgetSnapshot.from_model(budget)

        updated = self.controller.update_campaign(budget, **values)
        logger.info(
            "campaign_details_updated",
            extra={"campaign_id": str(campaign_id), "fields": sorted(values)},
        )
        return BudgetSnapshot.from_model(updated)

    def launch(self, campaign_id: UUID) -> CampaignTransition:
        return self._transition(
            campaign_id,
            "launch",
            guards=lambda b: failed_launch_guards(
                b.approval_status, b.creative_count, b.targeting_configured
            ),
            launched_at=self.clock.now_utc(),
        )

    def pause(self, campaign_id: UUID) -> CampaignTransition:
        return self._transition(campaign_id, "pause")

    def resume(self, campaign_id: UUID) -> CampaignTransition:
        return self._transition(
            campaign_id,
            "resume",
            guards=lambda b: failed_resume_guards(
                b.budget_total - b.budget_spent, b.end_date, self.clock.today()
            ),
        )

    def complete(self, campaign_id: UUID) -> CampaignTransition:
        return self._transition(campaign_id, "complete", completed_at=self.clock.now_utc())

    def archive(self, campaign_id: UUID) -> CampaignTransition:
        return self._transition(campaign_id, "archive", archived_at=self.clock.now_utc())

    def archive_stale(self, days_old: int = DEFAULT_ARCHIVE_AFTER_DAYS) -> list[CampaignTransition]:
        """Archive every completed campaign completed more than ``days_old`` days ago."""
        if days_old < 0:
            raise ValidationError("days_old must not be negative", field="days_old")
        cutoff = self.clock.now_utc() - timedelta(days=days_old)
        stale = self._budgets.list_where(
            CampaignBudget.status == COMPLETED,
            CampaignBudget.completed_at < cutoff,
            order_by=(CampaignBudget.completed_at,),
        )
        results = [self.archive(budget.campaign_id) for budget in stale]
        logger.info(
            "stale_campaigns_archived",
            extra={"count": len(results), "days_old": days_old},
        )
        return results

    # Internals

    def _transition(
        self,
        campaign_id: UUID,
        action: str,
        guards: Callable[[CampaignBudget], list[Guard]] | None = None,
        **values: Any,
    ) -> CampaignTransition:
        budget = self.controller.load(campaign_id)
        transition = resolve_transition(budget.status, action)
        if guards is not None:
            enforce_guards(transition, budget.status, guards(budget))
        return self._apply(budget, action, **values)

    def _apply(self, budget: CampaignBudget, action: str, **values: Any) -> CampaignTransition:
        transition = resolve_transition(budget.status, action)
        previous_status = budget.status
        updated = self.controller.update_campaign(budget, status=transition.to_state, **values)

        settlement = None
        if transition.settles:
            settlement = self.controller.settle_campaign(updated)
            updated = self.controller.load(budget.campaign_id, for_update=False)

        logger.info(
            "campaign_transitioned",
            extra={
                "campaign_id": str(budget.campaign_id),
                "action": action,
                "from_status": previous_status,
                "to_status": transition.to_state,
            },
        )
        return CampaignTransition(
            campaign_id=budget.campaign_id,
            action=action,
            previous_status=previous_status,
            status=updated.status,
            budget=BudgetSnapshot.from_model(updated),
            settlement=settlement,
        )
