"""
Tests for AccountLedger: the balance and hold primitives.

Verifies:
- Every successful mutation bumps version by one and appends one journal row
- Rejected mutations leave balance, hold and journal untouched
- Archived accounts reject every mutation
- Transfers write two legs sharing one transfer_id
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from budget_kernel.exceptions import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    InsufficientFundsError,
    InvalidStateError,
    OverReleaseError,
    ValidationError,
)


class TestOpenAndDeposit:

    def test_open_account_starts_empty(self, orchestrator):
        user_id = uuid4()
        snapshot = orchestrator.ledger.open_account(user_id)

        assert snapshot.user_id == user_id
        assert snapshot.balance == Decimal("0")
        assert snapshot.balance_on_hold == Decimal("0")
        assert snapshot.version == 1
        assert snapshot.is_archived is False

    def test_open_twice_rejected(self, orchestrator):
        user_id = uuid4()
        orchestrator.ledger.open_account(user_id)
        with pytest.raises(AccountAlreadyExistsError):
            orchestrator.ledger.open_account(user_id)

    def test_deposit_credits_balance_and_earned(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("0"))
        snapshot = orchestrator.ledger.deposit(user_id, Decimal("250"), "card")

        assert snapshot.balance == Decimal("250")
        assert snapshot.available == Decimal("250")
        assert snapshot.total_earned == Decimal("250")
        assert snapshot.version == 2

    def test_deposit_journal_row(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("100"))
        [entry] = orchestrator.ledger_selector.account_history(user_id)

        assert entry.entry_type == "deposit"
        assert entry.amount == Decimal("100")
        assert entry.balance_delta == Decimal("100")
        assert entry.hold_delta == Decimal("0")
        assert entry.balance_after == Decimal("100")
        assert entry.account_version == 2
        assert entry.reason == "test-deposit"

    def test_deposit_to_missing_account(self, orchestrator):
        with pytest.raises(AccountNotFoundError):
            orchestrator.ledger.deposit(uuid4(), Decimal("10"), "card")

    def test_float_amount_rejected(self, orchestrator, kernel_account):
        user_id = kernel_account()
        with pytest.raises(ValidationError):
            orchestrator.ledger.deposit(user_id, 10.5, "card")


class TestHoldAndRelease:

    def test_hold_moves_available_into_hold(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("1000"))
        snapshot = orchestrator.ledger.hold(user_id, Decimal("600"), "campaign")

        assert snapshot.balance == Decimal("1000")
        assert snapshot.balance_on_hold == Decimal("600")
        assert snapshot.available == Decimal("400")

    def test_hold_beyond_available_rejected_without_effect(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("1000"))
        orchestrator.ledger.hold(user_id, Decimal("600"), "first")
        before = orchestrator.ledger.snapshot(user_id)

        with pytest.raises(InsufficientFundsError) as exc_info:
            orchestrator.ledger.hold(user_id, Decimal("600"), "second")

        assert exc_info.value.required == Decimal("600")
        assert exc_info.value.available == Decimal("400")
        assert orchestrator.ledger.snapshot(user_id) == before
        assert len(orchestrator.ledger_selector.account_history(user_id)) == 2

    def test_release_returns_hold(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("1000"))
        orchestrator.ledger.hold(user_id, Decimal("600"), "campaign")
        snapshot = orchestrator.ledger.release(user_id, Decimal("200"), "trim")

        assert snapshot.balance_on_hold == Decimal("400")
        assert snapshot.available == Decimal("600")

    def test_over_release_rejected(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("1000"))
        orchestrator.ledger.hold(user_id, Decimal("100"), "campaign")
        with pytest.raises(OverReleaseError) as exc_info:
            orchestrator.ledger.release(user_id, Decimal("101"), "too much")
        assert exc_info.value.held == Decimal("100")

    def test_convert_held_to_spent(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("1000"))
        campaign_id = uuid4()
        orchestrator.ledger.hold(user_id, Decimal("300"), "campaign", campaign_id=campaign_id)
        snapshot = orchestrator.ledger.convert_held_to_spent(
            user_id, Decimal("120"), "impressions", campaign_id=campaign_id
        )

        assert snapshot.balance == Decimal("880")
        assert snapshot.balance_on_hold == Decimal("180")
        assert snapshot.total_spent == Decimal("120")
        assert snapshot.available == Decimal("700")

    def test_cent_holds_fill_available_exactly(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("0.3"))
        orchestrator.ledger.hold(user_id, Decimal("0.1"), "first")
        snapshot = orchestrator.ledger.hold(user_id, Decimal("0.2"), "second")

        assert snapshot.balance_on_hold == Decimal("0.3")
        assert snapshot.available == Decimal("0")

    def test_cent_releases_empty_hold_exactly(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("1"))
        orchestrator.ledger.hold(user_id, Decimal("0.3"), "campaign")
        orchestrator.ledger.release(user_id, Decimal("0.1"), "first")
        snapshot = orchestrator.ledger.release(user_id, Decimal("0.2"), "second")

        assert snapshot.balance_on_hold == Decimal("0")
        assert snapshot.available == Decimal("1")
        assert orchestrator.ledger_selector.reconcile(user_id).is_balanced

    def test_smallest_stored_unit_is_exact(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("0.000000003"))
        snapshot = orchestrator.ledger.hold(user_id, Decimal("0.000000001"), "campaign")

        assert snapshot.balance_on_hold == Decimal("0.000000001")
        assert snapshot.available == Decimal("0.000000002")

    @pytest.mark.parametrize("amount", [Decimal("0.0000000004"), "1.0000000001"])
    def test_amount_finer_than_storage_rejected(self, orchestrator, kernel_account, amount):
        user_id = kernel_account(Decimal("10"))
        before = orchestrator.ledger.snapshot(user_id)

        with pytest.raises(ValidationError, match="decimal places"):
            orchestrator.ledger.hold(user_id, amount, "tiny")

        assert orchestrator.ledger.snapshot(user_id) == before

    def test_trailing_zeros_beyond_storage_accepted(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("10"))
        snapshot = orchestrator.ledger.hold(user_id, Decimal("1.000000000000"), "campaign")
        assert snapshot.balance_on_hold == Decimal("1")

    def test_hold_emits_log(self, orchestrator, kernel_account, captured_logs):
        user_id = kernel_account(Decimal("1000"))
        orchestrator.ledger.hold(user_id, Decimal("50"), "campaign")

        held = [r for r in captured_logs() if r["message"] == "funds_held"]
        assert len(held) == 1
        assert held[0]["user_id"] == str(user_id)
        assert held[0]["amount"] == "50"


class TestWithdraw:

    def test_withdraw(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("100"))
        snapshot = orchestrator.ledger.withdraw(user_id, Decimal("40"), "bank")

        assert snapshot.balance == Decimal("60")
        assert snapshot.total_withdrawn == Decimal("40")

    def test_below_minimum_rejected(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("100"))
        with pytest.raises(ValidationError, match="Minimum withdrawal"):
            orchestrator.ledger.withdraw(user_id, Decimal("9.99"), "bank")

    def test_cannot_withdraw_held_funds(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("100"))
        orchestrator.ledger.hold(user_id, Decimal("80"), "campaign")
        with pytest.raises(InsufficientFundsError):
            orchestrator.ledger.withdraw(user_id, Decimal("30"), "bank")


class TestTransfer:

    def test_transfer_moves_available_funds(self, orchestrator, kernel_account):
        sender = kernel_account(Decimal("100"))
        receiver = kernel_account(Decimal("0"))

        receipt = orchestrator.ledger.transfer(sender, receiver, Decimal("30"), "refund")

        assert receipt.source.balance == Decimal("70")
        assert receipt.destination.balance == Decimal("30")
        assert receipt.amount == Decimal("30")

    def test_legs_share_transfer_id(self, orchestrator, kernel_account):
        sender = kernel_account(Decimal("100"))
        receiver = kernel_account(Decimal("0"))
        receipt = orchestrator.ledger.transfer(sender, receiver, Decimal("30"), "refund")

        out_leg = orchestrator.ledger_selector.account_history(sender)[0]
        in_leg = orchestrator.ledger_selector.account_history(receiver)[0]
        assert out_leg.entry_type == "transfer_out"
        assert in_leg.entry_type == "transfer_in"
        assert out_leg.transfer_id == in_leg.transfer_id == receipt.transfer_id
        assert out_leg.counterparty_user_id == receiver
        assert in_leg.counterparty_user_id == sender

    def test_transfer_to_self_rejected(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("100"))
        with pytest.raises(ValidationError):
            orchestrator.ledger.transfer(user_id, user_id, Decimal("1"), "loop")

    def test_transfer_beyond_available_rejected(self, orchestrator, kernel_account):
        sender = kernel_account(Decimal("100"))
        receiver = kernel_account(Decimal("0"))
        orchestrator.ledger.hold(sender, Decimal("90"), "campaign")

        with pytest.raises(InsufficientFundsError):
            orchestrator.ledger.transfer(sender, receiver, Decimal("20"), "refund")
        assert orchestrator.ledger.snapshot(receiver).balance == Decimal("0")

    def test_transfer_to_missing_account(self, orchestrator, kernel_account):
        sender = kernel_account(Decimal("100"))
        with pytest.raises(AccountNotFoundError):
            orchestrator.ledger.transfer(sender, uuid4(), Decimal("10"), "refund")


class TestArchive:

    def test_archive_blocks_mutations(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("100"))
        snapshot = orchestrator.ledger.archive_account(user_id)
        assert snapshot.is_archived is True

        with pytest.raises(InvalidStateError, match="archived"):
            orchestrator.ledger.deposit(user_id, Decimal("10"), "card")
        with pytest.raises(InvalidStateError, match="archived"):
            orchestrator.ledger.hold(user_id, Decimal("10"), "campaign")

    def test_archive_with_hold_rejected(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("100"))
        orchestrator.ledger.hold(user_id, Decimal("10"), "campaign")
        with pytest.raises(InvalidStateError, match="on hold"):
            orchestrator.ledger.archive_account(user_id)

    def test_archive_twice_rejected(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("0"))
        orchestrator.ledger.archive_account(user_id)
        with pytest.raises(InvalidStateError):
            orchestrator.ledger.archive_account(user_id)

    def test_archive_keeps_version(self, orchestrator, kernel_account):
        user_id = kernel_account(Decimal("100"))
        assert orchestrator.ledger.archive_account(user_id).version == 2
