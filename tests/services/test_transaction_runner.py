"""
Tests for TransactionRunner: commit, rollback, bounded retry and
storage-error wrapping.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from budget_kernel.db.engine import session_scope
from budget_kernel.db.transaction import TransactionRunner
from budget_kernel.exceptions import (
    ConcurrencyConflictError,
    StorageError,
    ValidationError,
)
from budget_kernel.logging_config import LogContext
from budget_kernel.models.account import Account
from budget_services.orchestrator import CustodyOrchestrator


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fast_runner(session_factory, sleeps):
    return TransactionRunner(
        session_factory, max_retries=3, backoff_seconds=0.01, sleep=sleeps.append
    )


def _account_exists(session_factory, user_id) -> bool:
    with session_factory() as session:
        stmt = select(Account).where(Account.user_id == user_id)
        return session.execute(stmt).scalar_one_or_none() is not None


class TestCommitAndRollback:

    def test_commits_and_returns_result(self, fast_runner, session_factory, clock, settings):
        user_id = uuid4()

        snapshot = fast_runner.run(
            lambda s: CustodyOrchestrator(s, clock, settings).ledger.open_account(user_id),
            operation="open_account",
        )

        assert snapshot.user_id == user_id
        assert _account_exists(session_factory, user_id)

    def test_business_error_rolls_back(self, fast_runner, session_factory, clock, settings):
        user_id = uuid4()

        def work(session):
            CustodyOrchestrator(session, clock, settings).ledger.open_account(user_id)
            raise ValidationError("rejected after write")

        with pytest.raises(ValidationError):
            fast_runner.run(work, operation="open_account")

        assert not _account_exists(session_factory, user_id)

    def test_context_bound_during_work(self, fast_runner):
        seen = {}

        def work(session):
            seen.update(LogContext.get_all())

        user_id = uuid4()
        fast_runner.run(work, operation="balance", user_id=user_id)

        assert seen["operation"] == "balance"
        assert seen["user_id"] == str(user_id)
        assert "correlation_id" in seen
        assert LogContext.get_all() == {}


class TestRetry:

    def test_conflict_retried_then_succeeds(self, fast_runner, sleeps):
        attempts = []

        def work(session):
            attempts.append(1)
            if len(attempts) < 3:
                raise ConcurrencyConflictError("account", "abc")
            return "done"

        assert fast_runner.run(work, operation="hold") == "done"
        assert len(attempts) == 3
        assert sleeps == [pytest.approx(0.01), pytest.approx(0.02)]

    def test_retry_budget_exhausted(self, fast_runner, sleeps):
        def work(session):
            raise ConcurrencyConflictError("account", "abc")

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            fast_runner.run(work, operation="hold")

        assert exc_info.value.attempts == 4
        assert exc_info.value.retryable is True
        assert len(sleeps) == 3

    def test_transient_lock_retried(self, fast_runner):
        attempts = []

        def work(session):
            attempts.append(1)
            if len(attempts) == 1:
                raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))
            return "ok"

        assert fast_runner.run(work, operation="deposit") == "ok"
        assert len(attempts) == 2


class TestStorageErrors:

    def test_non_transient_failure_wrapped(self, fast_runner, sleeps, captured_logs):
        user_id = uuid4()

        def work(session):
            session.execute(text("SELECT * FROM no_such_table"))

        with pytest.raises(StorageError) as exc_info:
            fast_runner.run(work, operation="balance", user_id=user_id)

        error = exc_info.value
        assert error.operation == "balance"
        assert error.context == {"user_id": str(user_id)}
        assert isinstance(error.__cause__, SQLAlchemyError)
        assert sleeps == []
        assert any(r["message"] == "storage_error" for r in captured_logs())


class TestSessionScope:

    def test_commits_on_exit(self, session_factory, clock, settings):
        user_id = uuid4()
        with session_scope(session_factory) as session:
            CustodyOrchestrator(session, clock, settings).ledger.open_account(user_id)
        assert _account_exists(session_factory, user_id)

    def test_rolls_back_on_error(self, session_factory, clock, settings, captured_logs):
        user_id = uuid4()
        with pytest.raises(ValidationError):
            with session_scope(session_factory) as session:
                CustodyOrchestrator(session, clock, settings).ledger.open_account(user_id)
                raise ValidationError("abandoned")

        assert not _account_exists(session_factory, user_id)
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())
