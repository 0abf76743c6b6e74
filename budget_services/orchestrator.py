"""
budget_services.orchestrator -- Per-transaction wiring of kernel services.

Responsibility:
    Creates every kernel service exactly once for one Session and wires
    them together.  No kernel service constructs another internally.

Invariants enforced:
    - Single-instance lifecycle: one AccountLedger, one SpendCapEnforcer,
      one controller and one gate per unit of work, all sharing the same
      Session and Clock.

Usage:
    orchestrator = CustodyOrchestrator(session, clock, settings)
    orchestrator.ledger.deposit(user_id, Decimal("100"), "card")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from budget_kernel.domain.clock import Clock
from budget_kernel.selectors.budget_forecaster import BudgetForecaster
from budget_kernel.selectors.ledger_selector import LedgerSelector
from budget_kernel.services.account_ledger import AccountLedger
from budget_kernel.services.campaign_budget_controller import CampaignBudgetController
from budget_kernel.services.campaign_lifecycle_gate import CampaignLifecycleGate
from budget_kernel.services.idempotency_service import IdempotencyService
from budget_kernel.services.spend_cap_enforcer import SpendCapEnforcer


@dataclass(frozen=True)
class CustodySettings:
    """Kernel tunables, copied out of BudgetLedgerConfig by the facade."""

    minimum_withdrawal: Decimal = Decimal("10")
    minimum_sample_days: int = 3
    schedule_tolerance_days: int = 0
    archive_after_days: int = 90


class CustodyOrchestrator:
    """Central factory for the kernel services of one unit of work.

    Non-goals:
        - Does NOT manage transaction boundaries (TransactionRunner does).
    """

    def __init__(self, session: Session, clock: Clock, settings: CustodySettings) -> None:
        self.session = session
        self.clock = clock

        self.idempotency = IdempotencyService(session)
        self.ledger = AccountLedger(
            session, clock, minimum_withdrawal=settings.minimum_withdrawal
        )
        self.caps = SpendCapEnforcer(session, clock)
        self.controller = CampaignBudgetController(session, clock, self.ledger, self.caps)
        self.gate = CampaignLifecycleGate(session, clock, self.controller)

        self.ledger_selector = LedgerSelector(session)
        self.forecaster = BudgetForecaster(
            session,
            clock,
            minimum_sample_days=settings.minimum_sample_days,
            schedule_tolerance_days=settings.schedule_tolerance_days,
        )
