"""
Pytest fixtures for the budget custody ledger test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- Kernel-level session + orchestrator fixtures
- A BudgetCustodyService wired to a DeterministicClock
- Factories for funded accounts and launched campaigns
- Captured structured logs

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL).  Tables are
  created once and emptied between tests.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from typing import Callable, Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import delete
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.db.base import Base
from budget_kernel.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
    drop_tables,
)
from budget_kernel.db.immutability import register_immutability_listeners
from budget_kernel.db.transaction import TransactionRunner
from budget_kernel.domain.clock import DeterministicClock
from budget_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from budget_services import BudgetCustodyService, CustodyOrchestrator, CustodySettings


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture budget_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.deposit(user_id, Decimal("10"), "card")
            logs = captured_logs()
            assert any(r["message"] == "funds_deposited" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("budget_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    """ORM listeners guarding the ledger journal stay registered all session."""
    register_immutability_listeners()
    yield


@pytest.fixture(scope="session")
def _external_engine() -> Generator[Engine | None, None, None]:
    """Session-wide engine when DATABASE_URL points at an external database."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        yield None
        return
    engine = create_engine_from_url(url, pool_size=30, max_overflow=20)
    drop_tables(engine)
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


def _empty_all_tables(engine: Engine) -> None:
    """Bulk delete children first; Core statements bypass the ORM listeners."""
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(delete(table))


@pytest.fixture
def engine(tmp_path, _external_engine) -> Generator[Engine, None, None]:
    """A database with empty tables for this test."""
    if _external_engine is not None:
        _empty_all_tables(_external_engine)
        yield _external_engine
        return

    eng = create_engine_from_url(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """
    A kernel-level session.  Nothing is committed unless the test commits.

    Do not combine with the ``service`` fixture in one test: on SQLite this
    session holds the write lock until teardown.
    """
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def clock() -> DeterministicClock:
    """2024-01-01 12:00 UTC unless a test moves it."""
    return DeterministicClock()


@pytest.fixture
def settings() -> CustodySettings:
    return CustodySettings()


@pytest.fixture
def orchestrator(session, clock, settings) -> CustodyOrchestrator:
    return CustodyOrchestrator(session, clock, settings)


@pytest.fixture
def runner(session_factory) -> TransactionRunner:
    return TransactionRunner(session_factory, max_retries=10, backoff_seconds=0.001)


@pytest.fixture
def service(session_factory, runner, clock, settings) -> BudgetCustodyService:
    return BudgetCustodyService(session_factory, runner=runner, clock=clock, settings=settings)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def funded_account(service) -> Callable[..., UUID]:
    """
    Open an account and deposit into it through the facade.

    Usage::

        user_id = funded_account(Decimal("1000"))
    """

    def _make(balance: Decimal = Decimal("1000")) -> UUID:
        user_id = uuid4()
        service.open_account(user_id)
        if balance > 0:
            service.deposit(user_id, balance, source="test-deposit")
        return user_id

    return _make


@pytest.fixture
def launched_campaign(service) -> Callable[..., UUID]:
    """
    Reserve a budget and drive the campaign to active.

    Usage::

        campaign_id = launched_campaign(user_id, Decimal("300"), budget_daily=Decimal("50"))
    """

    def _make(user_id: UUID, amount: Decimal, **reserve_kwargs) -> UUID:
        campaign_id = uuid4()
        service.reserve_budget(user_id, campaign_id, amount, **reserve_kwargs)
        service.update_details(campaign_id, creative_count=1, targeting_configured=True)
        service.submit_for_approval(campaign_id)
        service.record_review(campaign_id, approved=True)
        service.launch(campaign_id)
        return campaign_id

    return _make


@pytest.fixture
def kernel_account(orchestrator) -> Callable[..., UUID]:
    """Open and fund an account inside the kernel-level session."""

    def _make(balance: Decimal = Decimal("1000")) -> UUID:
        user_id = uuid4()
        orchestrator.ledger.open_account(user_id)
        if balance > 0:
            orchestrator.ledger.deposit(user_id, balance, "test-deposit")
        return user_id

    return _make
