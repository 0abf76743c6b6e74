"""
Module: budget_kernel.models.ledger_entry
Responsibility: ORM persistence for the append-only money journal.  One row
    is written for every committed mutation of an account's balance or
    hold, recording the deltas and the resulting balances.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    JOURNAL_IMMUTABILITY -- rows are never updated or deleted (ORM listeners
        in db/immutability.py).
    - (user_id, account_version) is unique: each account mutation bumps the
      account version exactly once and writes exactly one entry, which gives
      a gap-free per-account sequence.

Failure modes:
    - ImmutabilityViolationError on any UPDATE or DELETE through the ORM.

Audit relevance:
    Replaying an account's entries in account_version order reproduces its
    balance and balance_on_hold; LedgerSelector.reconcile() does exactly that.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, UUIDString
from budget_kernel.db.types import Money


class EntryType(str, Enum):
    """Kind of mutation recorded by a ledger entry."""

    HOLD = "hold"
    RELEASE = "release"
    SPEND = "spend"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"


class LedgerEntry(Base):
    """
    One immutable journal line of an account.

    Sign convention:
        balance_delta and hold_delta are signed; ``amount`` is always the
        positive magnitude of the operation.

        hold          balance_delta = 0        hold_delta = +amount
        release       balance_delta = 0        hold_delta = -amount
        spend         balance_delta = -amount  hold_delta = -amount
        deposit       balance_delta = +amount  hold_delta = 0
        withdrawal    balance_delta = -amount  hold_delta = 0
        transfer_out  balance_delta = -amount  hold_delta = 0
        transfer_in   balance_delta = +amount  hold_delta = 0
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("user_id", "account_version", name="uq_ledger_entry_account_version"),
        Index("idx_ledger_entry_campaign", "campaign_id"),
        Index("idx_ledger_entry_transfer", "transfer_id"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.user_id"),
        nullable=False,
    )

    # Account version produced by this mutation
    account_version: Mapped[int] = mapped_column(Integer, nullable=False)

    campaign_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    entry_type: Mapped[str] = mapped_column(String(20), nullable=False)

    amount: Mapped[Money] = mapped_column(nullable=False)
    balance_delta: Mapped[Money] = mapped_column(nullable=False)
    hold_delta: Mapped[Money] = mapped_column(nullable=False)
    balance_after: Mapped[Money] = mapped_column(nullable=False)
    hold_after: Mapped[Money] = mapped_column(nullable=False)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Shared by the two legs of a transfer
    transfer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    counterparty_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.entry_type} user={self.user_id} "
            f"v={self.account_version} amount={self.amount}>"
        )

    @property
    def entry_type_enum(self) -> EntryType:
        return EntryType(self.entry_type)
