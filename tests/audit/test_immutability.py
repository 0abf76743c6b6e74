"""
Tests for the append-only ledger journal.

Verifies that ORM-level updates and deletes of LedgerEntry rows are
rejected, and that the journal's (user_id, account_version) pair is unique.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from budget_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from budget_kernel.exceptions import ImmutabilityViolationError
from budget_kernel.models.ledger_entry import LedgerEntry


def _first_entry(session, user_id) -> LedgerEntry:
    return session.execute(
        select(LedgerEntry).where(LedgerEntry.user_id == user_id)
    ).scalars().first()


class TestLedgerEntryImmutability:

    def test_update_rejected(self, session, kernel_account):
        user_id = kernel_account(Decimal("100"))
        entry = _first_entry(session, user_id)

        entry.amount = Decimal("1000000")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "LedgerEntry"

    def test_delete_rejected(self, session, kernel_account):
        user_id = kernel_account(Decimal("100"))
        entry = _first_entry(session, user_id)

        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_logged(self, session, kernel_account, captured_logs):
        user_id = kernel_account(Decimal("100"))
        entry = _first_entry(session, user_id)

        entry.reason = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        assert any(r["message"] == "immutability_violation_blocked" for r in captured_logs())

    def test_duplicate_account_version_rejected(self, session, clock, kernel_account):
        user_id = kernel_account(Decimal("100"))
        original = _first_entry(session, user_id)

        session.add(
            LedgerEntry(
                user_id=user_id,
                account_version=original.account_version,
                entry_type="deposit",
                amount=Decimal("1"),
                balance_delta=Decimal("1"),
                hold_delta=Decimal("0"),
                balance_after=Decimal("101"),
                hold_after=Decimal("0"),
                created_at=clock.now_utc(),
            )
        )
        with pytest.raises(IntegrityError):
            session.flush()


class TestListenerRegistration:

    def test_unregistered_listeners_allow_staging(self, session, kernel_account):
        user_id = kernel_account(Decimal("100"))
        entry = _first_entry(session, user_id)

        unregister_immutability_listeners()
        try:
            entry.reason = "staged for a test"
            session.flush()
        finally:
            register_immutability_listeners()

        entry.reason = "blocked again"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_registration_is_idempotent(self, session, kernel_account):
        register_immutability_listeners()
        register_immutability_listeners()
        user_id = kernel_account(Decimal("100"))
        entry = _first_entry(session, user_id)

        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
