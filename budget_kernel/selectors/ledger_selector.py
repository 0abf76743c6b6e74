"""
Module: budget_kernel.selectors.ledger_selector
Responsibility: Read-only account queries -- balances, platform statistics,
    finance history from the journal, and journal reconciliation.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Reconciliation: for every account, stored balance == sum of journal
      balance_delta and stored balance_on_hold == sum of journal hold_delta,
      and the journal's account_version sequence is gap-free (2..version).

Failure modes:
    - AccountNotFoundError from balance() and reconcile().

Audit relevance:
    reconcile() is the integrity check auditors run: the Account row is a
    cached total, the LedgerEntry rows are the evidence.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, literal, select
from sqlalchemy.orm import Session

from budget_kernel.db.types import ExactMoney, round_money
from budget_kernel.domain.dtos import (
    AccountSnapshot,
    LedgerEntryRecord,
    PlatformStatistics,
    ReconciliationResult,
)
from budget_kernel.exceptions import AccountNotFoundError, ValidationError
from budget_kernel.models.account import Account
from budget_kernel.models.ledger_entry import LedgerEntry
from budget_kernel.selectors.base import BaseSelector

DEFAULT_HISTORY_LIMIT = 100
MAX_HISTORY_LIMIT = 1000


class LedgerSelector(BaseSelector):
    """
    Selector for account balances and the money journal.

    Guarantees:
        - All amounts are Decimal (never float).
        - History is newest first, stable under equal timestamps.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def balance(self, user_id: UUID) -> AccountSnapshot:
        account = self._account(user_id)
        return AccountSnapshot.from_model(account)

    def statistics(self) -> PlatformStatistics:
        """Totals over all non-archived accounts."""
        zero = literal(Decimal("0"), ExactMoney())
        stmt = select(
            func.count(Account.id),
            func.coalesce(func.sum(Account.balance), zero),
            func.coalesce(func.sum(Account.balance_on_hold), zero),
            func.coalesce(func.sum(Account.total_earned), zero),
            func.coalesce(func.sum(Account.total_spent), zero),
            func.coalesce(func.sum(Account.total_withdrawn), zero),
        ).where(Account.is_archived.is_(False))
        count, balance, on_hold, earned, spent, withdrawn = self.session.execute(stmt).one()

        balance = Decimal(balance)
        on_hold = Decimal(on_hold)
        return PlatformStatistics(
            account_count=count,
            total_balance=balance,
            total_on_hold=on_hold,
            total_available=balance - on_hold,
            total_earned=Decimal(earned),
            total_spent=Decimal(spent),
            total_withdrawn=Decimal(withdrawn),
            average_balance=round_money(balance / count) if count else Decimal("0.00"),
        )

    def account_history(
        self,
        user_id: UUID,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> list[LedgerEntryRecord]:
        """Journal entries of one account, newest first."""
        self._check_page(limit, offset)
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.user_id == user_id)
            .order_by(LedgerEntry.account_version.desc())
            .limit(limit)
            .offset(offset)
        )
        return [LedgerEntryRecord.from_model(e) for e in self.session.execute(stmt).scalars()]

    def campaign_history(
        self,
        campaign_id: UUID,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> list[LedgerEntryRecord]:
        """Journal entries tagged with one campaign, newest first."""
        self._check_page(limit, offset)
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.campaign_id == campaign_id)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.account_version.desc())
            .limit(limit)
            .offset(offset)
        )
        return [LedgerEntryRecord.from_model(e) for e in self.session.execute(stmt).scalars()]

    def reconcile(self, user_id: UUID) -> ReconciliationResult:
        """Compare the stored account totals with the journal sums."""
        account = self._account(user_id)
        zero = literal(Decimal("0"), ExactMoney())
        stmt = select(
            func.count(LedgerEntry.id),
            func.coalesce(func.sum(LedgerEntry.balance_delta), zero),
            func.coalesce(func.sum(LedgerEntry.hold_delta), zero),
            func.min(LedgerEntry.account_version),
            func.max(LedgerEntry.account_version),
        ).where(LedgerEntry.user_id == user_id)
        count, balance, hold, first_version, last_version = self.session.execute(stmt).one()

        journal_balance = Decimal(balance)
        journal_hold = Decimal(hold)
        if count:
            sequence_ok = (
                first_version == 2
                and last_version == account.version
                and count == account.version - 1
            )
        else:
            sequence_ok = account.version == 1

        return ReconciliationResult(
            user_id=user_id,
            stored_balance=account.balance,
            journal_balance=journal_balance,
            stored_hold=account.balance_on_hold,
            journal_hold=journal_hold,
            entry_count=count,
            account_version=account.version,
            is_balanced=(
                sequence_ok
                and account.balance == journal_balance
                and account.balance_on_hold == journal_hold
            ),
        )

    def _account(self, user_id: UUID) -> Account:
        account = self.session.execute(
            select(Account).where(Account.user_id == user_id)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(user_id))
        return account

    @staticmethod
    def _check_page(limit: int, offset: int) -> None:
        if not 1 <= limit <= MAX_HISTORY_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}", field="limit")
        if offset < 0:
            raise ValidationError("offset must not be negative", field="offset")
