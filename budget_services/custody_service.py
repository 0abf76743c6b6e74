"""
budget_services.custody_service -- The function-call contract of the ledger.

Responsibility:
    The single surface consumed by external callers: campaign lifecycle
    orchestration, the performance-ingestion pipeline and user finance
    endpoints.  Every call runs as its own unit of work through the
    TransactionRunner, so each call commits fully or not at all, contention
    is retried, and keyed calls replay instead of repeating.

Architecture position:
    Services -- composition root.  Holds the engine, session factory,
    clock and runner; builds a CustodyOrchestrator per transaction.

Invariants enforced:
    - ATOMIC_MUTATION via TransactionRunner.run for every call.
    - IDEMPOTENCY: mutating calls accept ``idempotency_key``; the key and
      the stored result are written in the same transaction as the effect.
    - JOURNAL_IMMUTABILITY listeners are registered on construction.

Failure modes:
    - Every BudgetKernelError subclass propagates unchanged.
    - ConcurrencyConflictError (retryable) once the retry budget is spent.
    - StorageError for unexpected database failures.

Usage:
    service = BudgetCustodyService.from_config(get_active_config())
    service.open_account(user_id)
    service.deposit(user_id, Decimal("1000"), source="card")
    service.reserve_budget(user_id, campaign_id, Decimal("300"))
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Callable, TypeVar
from uuid import UUID

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from budget_config import get_active_config
from budget_config.schema import BudgetLedgerConfig
from budget_kernel.db.engine import create_engine_from_url, create_session_factory, create_tables
from budget_kernel.db.immutability import register_immutability_listeners
from budget_kernel.db.transaction import TransactionRunner
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.dtos import (
    AccountSnapshot,
    AffordabilityCheck,
    BudgetAdjustment,
    BudgetForecast,
    BudgetSnapshot,
    CampaignTransition,
    DailySpend,
    LedgerEntryRecord,
    PlatformStatistics,
    ReconciliationResult,
    ReplayableResult,
    RoiSummary,
    SettlementResult,
    SpendResult,
    TransferReceipt,
)
from budget_kernel.logging_config import configure_logging, get_logger
from budget_services.orchestrator import CustodyOrchestrator, CustodySettings

logger = get_logger("services.custody")

T = TypeVar("T")
R = TypeVar("R", bound=ReplayableResult)


class BudgetCustodyService:
    """
    Transactional facade over the budget custody kernel.

    Contract:
        Thread-safe: holds no per-call state; each call opens its own
        session.  Returns frozen DTOs, never ORM objects.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        runner: TransactionRunner | None = None,
        clock: Clock | None = None,
        settings: CustodySettings | None = None,
        engine: Engine | None = None,
    ):
        self._session_factory = session_factory
        self._runner = runner or TransactionRunner(session_factory)
        self.clock = clock or SystemClock()
        self.settings = settings or CustodySettings()
        self.engine = engine
        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        config: BudgetLedgerConfig | None = None,
        clock: Clock | None = None,
        create_schema: bool = True,
    ) -> BudgetCustodyService:
        """Build engine, session factory, runner and settings from configuration."""
        config = config or get_active_config()
        configure_logging(level=config.logging.level)

        engine = create_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )
        if create_schema:
            create_tables(engine)

        session_factory = create_session_factory(engine)
        runner = TransactionRunner(
            session_factory,
            max_retries=config.concurrency.max_retries,
            backoff_seconds=config.concurrency.backoff_seconds,
            backoff_multiplier=config.concurrency.backoff_multiplier,
        )
        settings = CustodySettings(
            minimum_withdrawal=config.ledger.minimum_withdrawal,
            minimum_sample_days=config.forecast.minimum_sample_days,
            schedule_tolerance_days=config.forecast.schedule_tolerance_days,
            archive_after_days=config.lifecycle.archive_after_days,
        )
        logger.info(
            "custody_service_ready",
            extra={"config_checksum": config.checksum, "dialect": engine.dialect.name},
        )
        return cls(session_factory, runner=runner, clock=clock, settings=settings, engine=engine)

    # User finance

    def open_account(self, user_id: UUID) -> AccountSnapshot:
        return self._run(
            "open_account",
            lambda o: o.ledger.open_account(user_id),
            user_id=user_id,
        )

    def deposit(
        self,
        user_id: UUID,
        amount: Decimal,
        source: str,
        idempotency_key: str | None = None,
    ) -> AccountSnapshot:
        return self._keyed(
            "deposit",
            idempotency_key,
            {"user_id": user_id, "amount": amount, "source": source},
            AccountSnapshot,
            lambda o: o.ledger.deposit(user_id, amount, source, idempotency_key=idempotency_key),
            user_id=user_id,
        )

    def withdraw(
        self,
        user_id: UUID,
        amount: Decimal,
        destination: str,
        idempotency_key: str | None = None,
    ) -> AccountSnapshot:
        return self._keyed(
            "withdraw",
            idempotency_key,
            {"user_id": user_id, "amount": amount, "destination": destination},
            AccountSnapshot,
            lambda o: o.ledger.withdraw(
                user_id, amount, destination, idempotency_key=idempotency_key
            ),
            user_id=user_id,
        )

    def transfer(
        self,
        from_user_id: UUID,
        to_user_id: UUID,
        amount: Decimal,
        reason: str,
        idempotency_key: str | None = None,
    ) -> TransferReceipt:
        return self._keyed(
            "transfer",
            idempotency_key,
            {"from": from_user_id, "to": to_user_id, "amount": amount, "reason": reason},
            TransferReceipt,
            lambda o: o.ledger.transfer(
                from_user_id, to_user_id, amount, reason, idempotency_key=idempotency_key
            ),
            user_id=from_user_id,
        )

    def hold(
        self,
        user_id: UUID,
        amount: Decimal,
        reason: str,
        campaign_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> AccountSnapshot:
        return self._keyed(
            "hold",
            idempotency_key,
            {"user_id": user_id, "amount": amount, "reason": reason, "campaign_id": campaign_id},
            AccountSnapshot,
            lambda o: o.ledger.hold(
                user_id, amount, reason, campaign_id=campaign_id, idempotency_key=idempotency_key
            ),
            user_id=user_id,
            campaign_id=campaign_id,
        )

    def release(
        self,
        user_id: UUID,
        amount: Decimal,
        reason: str,
        campaign_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> AccountSnapshot:
        return self._keyed(
            "release",
            idempotency_key,
            {"user_id": user_id, "amount": amount, "reason": reason, "campaign_id": campaign_id},
            AccountSnapshot,
            lambda o: o.ledger.release(
                user_id, amount, reason, campaign_id=campaign_id, idempotency_key=idempotency_key
            ),
            user_id=user_id,
            campaign_id=campaign_id,
        )

    def archive_account(self, user_id: UUID) -> AccountSnapshot:
        return self._run(
            "archive_account",
            lambda o: o.ledger.archive_account(user_id),
            user_id=user_id,
        )

    def balance(self, user_id: UUID) -> AccountSnapshot:
        return self._run("balance", lambda o: o.ledger_selector.balance(user_id), user_id=user_id)

    def check_affordability(self, user_id: UUID, amount: Decimal) -> AffordabilityCheck:
        return self._run(
            "check_affordability",
            lambda o: o.controller.check_affordability(user_id, amount),
            user_id=user_id,
        )

    def statistics(self) -> PlatformStatistics:
        return self._run("statistics", lambda o: o.ledger_selector.statistics())

    def account_history(
        self, user_id: UUID, limit: int = 100, offset: int = 0
    ) -> list[LedgerEntryRecord]:
        return self._run(
            "account_history",
            lambda o: o.ledger_selector.account_history(user_id, limit, offset),
            user_id=user_id,
        )

    def campaign_history(
        self, campaign_id: UUID, limit: int = 100, offset: int = 0
    ) -> list[LedgerEntryRecord]:
        return self._run(
            "campaign_history",
            lambda o: o.ledger_selector.campaign_history(campaign_id, limit, offset),
            campaign_id=campaign_id,
        )

    def reconcile(self, user_id: UUID) -> ReconciliationResult:
        return self._run(
            "reconcile", lambda o: o.ledger_selector.reconcile(user_id), user_id=user_id
        )

    # Campaign budget

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
        request = {
            "user_id": user_id,
            "campaign_id": campaign_id,
            "amount": amount,
            "budget_daily": budget_daily,
            "currency": currency,
            "start_date": start_date,
            "end_date": end_date,
        }
        return self._keyed(
            "reserve_budget",
            idempotency_key,
            request,
            BudgetSnapshot,
            lambda o: o.controller.reserve_budget(
                user_id,
                campaign_id,
                amount,
                budget_daily=budget_daily,
                currency=currency,
                start_date=start_date,
                end_date=end_date,
                idempotency_key=idempotency_key,
            ),
            user_id=user_id,
            campaign_id=campaign_id,
        )

    def adjust_budget(
        self,
        user_id: UUID,
        campaign_id: UUID,
        new_amount: Decimal,
        idempotency_key: str | None = None,
    ) -> BudgetAdjustment:
        return self._keyed(
            "adjust_budget",
            idempotency_key,
            {"user_id": user_id, "campaign_id": campaign_id, "new_amount": new_amount},
            BudgetAdjustment,
            lambda o: o.controller.adjust_budget(
                user_id, campaign_id, new_amount, idempotency_key=idempotency_key
            ),
            user_id=user_id,
            campaign_id=campaign_id,
        )

    def update_daily_cap(
        self,
        campaign_id: UUID,
        budget_daily: Decimal | None,
        idempotency_key: str | None = None,
    ) -> BudgetSnapshot:
        return self._keyed(
            "update_daily_cap",
            idempotency_key,
            {"campaign_id": campaign_id, "budget_daily": budget_daily},
            BudgetSnapshot,
            lambda o: o.controller.update_daily_cap(campaign_id, budget_daily),
            campaign_id=campaign_id,
        )

    def update_details(
        self,
        campaign_id: UUID,
        creative_count: int | None = None,
        targeting_configured: bool | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        currency: str | None = None,
        idempotency_key: str | None = None,
    ) -> BudgetSnapshot:
        request = {
            "campaign_id": campaign_id,
            "creative_count": creative_count,
            "targeting_configured": targeting_configured,
            "start_date": start_date,
            "end_date": end_date,
            "currency": currency,
        }
        return self._keyed(
            "update_details",
            idempotency_key,
            request,
            BudgetSnapshot,
            lambda o: o.gate.update_details(
                campaign_id,
                creative_count=creative_count,
                targeting_configured=targeting_configured,
                start_date=start_date,
                end_date=end_date,
                currency=currency,
            ),
            campaign_id=campaign_id,
        )

    def process_spend(
        self,
        campaign_id: UUID,
        amount: Decimal,
        reason: str,
        idempotency_key: str | None = None,
    ) -> SpendResult:
        return self._keyed(
            "process_spend",
            idempotency_key,
            {"campaign_id": campaign_id, "amount": amount, "reason": reason},
            SpendResult,
            lambda o: o.controller.process_spend(
                campaign_id, amount, reason, idempotency_key=idempotency_key
            ),
            campaign_id=campaign_id,
        )

    def settle(
        self,
        user_id: UUID,
        campaign_id: UUID,
        idempotency_key: str | None = None,
    ) -> SettlementResult:
        return self._keyed(
            "settle",
            idempotency_key,
            {"user_id": user_id, "campaign_id": campaign_id},
            SettlementResult,
            lambda o: o.controller.settle(user_id, campaign_id),
            user_id=user_id,
            campaign_id=campaign_id,
        )

    def campaign_budget(self, campaign_id: UUID) -> BudgetSnapshot:
        return self._run(
            "campaign_budget",
            lambda o: o.controller.snapshot(campaign_id),
            campaign_id=campaign_id,
        )

    def spend_history(self, campaign_id: UUID, since: date | None = None) -> list[DailySpend]:
        return self._run(
            "spend_history",
            lambda o: o.caps.history(campaign_id, since),
            campaign_id=campaign_id,
        )

    # Campaign lifecycle

    def submit_for_approval(
        self, campaign_id: UUID, idempotency_key: str | None = None
    ) -> CampaignTransition:
        return self._transition("submit_for_approval", campaign_id, idempotency_key,
                                lambda o: o.gate.submit_for_approval(campaign_id))

    def record_review(
        self,
        campaign_id: UUID,
        approved: bool,
        notes: str | None = None,
        idempotency_key: str | None = None,
    ) -> CampaignTransition:
        return self._keyed(
            "record_review",
            idempotency_key,
            {"campaign_id": campaign_id, "approved": approved, "notes": notes},
            CampaignTransition,
            lambda o: o.gate.record_review(campaign_id, approved, notes),
            campaign_id=campaign_id,
        )

    def launch(self, campaign_id: UUID, idempotency_key: str | None = None) -> CampaignTransition:
        return self._transition("launch", campaign_id, idempotency_key,
                                lambda o: o.gate.launch(campaign_id))

    def pause(self, campaign_id: UUID, idempotency_key: str | None = None) -> CampaignTransition:
        return self._transition("pause", campaign_id, idempotency_key,
                                lambda o: o.gate.pause(campaign_id))

    def resume(self, campaign_id: UUID, idempotency_key: str | None = None) -> CampaignTransition:
        return self._transition("resume", campaign_id, idempotency_key,
                                lambda o: o.gate.resume(campaign_id))

    def complete(self, campaign_id: UUID, idempotency_key: str | None = None) -> CampaignTransition:
        return self._transition("complete", campaign_id, idempotency_key,
                                lambda o: o.gate.complete(campaign_id))

    def archive(self, campaign_id: UUID, idempotency_key: str | None = None) -> CampaignTransition:
        return self._transition("archive", campaign_id, idempotency_key,
                                lambda o: o.gate.archive(campaign_id))

    def archive_stale(self, days_old: int | None = None) -> list[CampaignTransition]:
        days = self.settings.archive_after_days if days_old is None else days_old
        return self._run("archive_stale", lambda o: o.gate.archive_stale(days))

    # Advisory

    def forecast(self, campaign_id: UUID) -> BudgetForecast:
        return self._run(
            "forecast", lambda o: o.forecaster.forecast(campaign_id), campaign_id=campaign_id
        )

    def roi(self, campaign_id: UUID, revenue: Decimal) -> RoiSummary:
        return self._run(
            "roi", lambda o: o.forecaster.roi(campaign_id, revenue), campaign_id=campaign_id
        )

    # Plumbing

    def _orchestrator(self, session: Session) -> CustodyOrchestrator:
        return CustodyOrchestrator(session, self.clock, self.settings)

    def _run(
        self,
        operation: str,
        call: Callable[[CustodyOrchestrator], T],
        **ids: Any,
    ) -> T:
        return self._runner.run(
            lambda session: call(self._orchestrator(session)),
            operation=operation,
            **ids,
        )

    def _keyed(
        self,
        operation: str,
        idempotency_key: str | None,
        request: dict[str, Any],
        result_type: type[R],
        call: Callable[[CustodyOrchestrator], R],
        **ids: Any,
    ) -> R:
        def work(session: Session) -> R:
            orchestrator = self._orchestrator(session)
            return orchestrator.idempotency.execute(
                idempotency_key,
                operation,
                request,
                result_type,
                lambda: call(orchestrator),
            )

        return self._runner.run(
            work,
            operation=operation,
            idempotency_key=idempotency_key,
            **ids,
        )

    def _transition(
        self,
        operation: str,
        campaign_id: UUID,
        idempotency_key: str | None,
        call: Callable[[CustodyOrchestrator], CampaignTransition],
    ) -> CampaignTransition:
        return self._keyed(
            operation,
            idempotency_key,
            {"campaign_id": campaign_id},
            CampaignTransition,
            call,
            campaign_id=campaign_id,
        )
