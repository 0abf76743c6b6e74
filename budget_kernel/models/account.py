"""
Module: budget_kernel.models.account
Responsibility: ORM persistence for user money accounts -- the custody
    record that holds each user's balance and escrowed funds.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    HOLD_WITHIN_BALANCE -- 0 <= balance_on_hold <= balance.  Enforced by
        AccountLedger's conditional updates and, as a last line, by the
        CHECK constraints below.

Failure modes:
    - IntegrityError (CHECK) if any writer bypasses AccountLedger and
      breaks the hold invariant.
    - IntegrityError (unique) on a second account for the same user.

Audit relevance:
    Every change to the money columns is mirrored by a LedgerEntry row;
    LedgerSelector.reconcile() recomputes balance and hold from those rows.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import TimestampedBase, UUIDString
from budget_kernel.db.types import Money


class Account(TimestampedBase):
    """
    Money account of one marketplace user.

    Contract:
        Mutated only through AccountLedger.  Never hard-deleted; archiving
        sets is_archived and blocks further mutation.

    Guarantees:
        - available == balance - balance_on_hold and is never negative.
        - version increases by one on every mutation.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_account_user"),
        CheckConstraint("balance >= 0", name="ck_account_balance_non_negative"),
        CheckConstraint("balance_on_hold >= 0", name="ck_account_hold_non_negative"),
        CheckConstraint(
            "balance_on_hold <= balance", name="ck_account_hold_within_balance"
        ),
        Index("idx_account_archived", "is_archived"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Total owned funds, including funds on hold
    balance: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    # Escrowed against campaigns
    balance_on_hold: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    total_earned: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    total_spent: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    total_withdrawn: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(default=1, nullable=False)

    last_transaction_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Account user={self.user_id} balance={self.balance} "
            f"hold={self.balance_on_hold}>"
        )

    @property
    def available(self) -> Decimal:
        """Funds eligible for new holds, withdrawals and transfers."""
        return self.balance - self.balance_on_hold
