"""
Module: budget_kernel.services.account_ledger
Responsibility: Per-user balance and hold primitives -- open, hold,
    release, convert-to-spent, deposit, withdraw, transfer, archive.  The
    only code that writes the money columns of an Account.
Architecture position: Kernel > Services.  Called by
    CampaignBudgetController and by the budget_services facade.

Invariants enforced:
    HOLD_WITHIN_BALANCE -- every mutation is ONE conditional UPDATE whose
        WHERE clause re-asserts the precondition (available >= amount,
        balance_on_hold >= amount, not archived).  The database evaluates
        it atomically against the current row, so two concurrent holds can
        never both pass a check made against a stale read.  Zero affected
        rows means the precondition failed; the row is then re-read only to
        pick the error to raise.
    LOCK_ORDERING -- transfer locks both rows in ascending user_id order
        before either UPDATE, so symmetric transfers cannot deadlock.
    Journal -- every money mutation bumps ``version`` by one and appends a
        LedgerEntry stamped with that version and the post-mutation
        balances.

Failure modes:
    - ValidationError: amount not a positive finite Decimal; withdrawal
      below minimum; transfer to self.
    - AccountAlreadyExistsError: open_account for an existing user.
    - AccountNotFoundError: no account for user_id.
    - InvalidStateError: account archived; archive with funds on hold.
    - InsufficientFundsError: hold/withdraw/transfer exceeds available.
    - OverReleaseError: release/convert exceeds balance_on_hold.

Audit relevance:
    Emits funds_held, funds_released, held_converted_to_spent,
    funds_deposited, funds_withdrawn, funds_transferred and
    account_archived log events, each mirrored by LedgerEntry rows.
"""

from decimal import Decimal
from typing import Any, Callable, NoReturn
from uuid import UUID, uuid4

from sqlalchemy import ColumnElement
from sqlalchemy.orm import Session

from budget_kernel.db.repository import Repository
from budget_kernel.domain.amounts import require_positive
from budget_kernel.domain.clock import Clock
from budget_kernel.domain.dtos import AccountSnapshot, TransferReceipt
from budget_kernel.exceptions import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    InsufficientFundsError,
    InvalidStateError,
    OverReleaseError,
    ValidationError,
)
from budget_kernel.logging_config import get_logger
from budget_kernel.models.account import Account
from budget_kernel.models.ledger_entry import EntryType, LedgerEntry
from budget_kernel.services.base import BaseService

logger = get_logger("services.account_ledger")

DEFAULT_MINIMUM_WITHDRAWAL = Decimal("10")

_available = Account.balance - Account.balance_on_hold


class AccountLedger(BaseService):
    """
    Atomic single-account (transfer: two-account) money operations.

    Contract:
        Every method runs inside the caller's transaction and flushes.
        Every mutating method returns an AccountSnapshot (TransferReceipt
        for transfer) reflecting the committed-to-be state.

    Guarantees:
        - 0 <= balance_on_hold <= balance after every call.
        - A failed call leaves no write behind (the UPDATE matched no row).

    Non-goals:
        - Does NOT handle idempotency keys itself; IdempotencyService wraps
          the call.  A key passed here is only stamped on journal rows.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        minimum_withdrawal: Decimal = DEFAULT_MINIMUM_WITHDRAWAL,
    ):
        super().__init__(session, clock)
        self.minimum_withdrawal = minimum_withdrawal
        self._accounts = Repository(session, Account)
        self._entries = Repository(session, LedgerEntry)

    # Lookups

    def get_account(self, user_id: UUID) -> Account:
        account = self._accounts.get_by(user_id=user_id)
        if account is None:
            raise AccountNotFoundError(str(user_id))
        return account

    def snapshot(self, user_id: UUID) -> AccountSnapshot:
        return AccountSnapshot.from_model(self.get_account(user_id))

    # Account lifecycle

    def open_account(self, user_id: UUID) -> AccountSnapshot:
        """
        Create a zeroed account for ``user_id``.

        Raises:
            AccountAlreadyExistsError: An account (archived or not) exists.
        """
        if self._accounts.get_by(user_id=user_id) is not None:
            raise AccountAlreadyExistsError(str(user_id))

        account = self._accounts.add(
            Account(
                user_id=user_id,
                balance=Decimal("0"),
                balance_on_hold=Decimal("0"),
                total_earned=Decimal("0"),
                total_spent=Decimal("0"),
                total_withdrawn=Decimal("0"),
                version=1,
                is_archived=False,
            )
        )
        logger.info("account_opened", extra={"user_id": str(user_id)})
        return AccountSnapshot.from_model(account)

    def archive_account(self, user_id: UUID) -> AccountSnapshot:
        """
        Soft-archive an account.  Archived accounts reject every mutation.

        Raises:
            InvalidStateError: Already archived, or funds still on hold.
        """
        rows = self._accounts.update_where(
            Account.user_id == user_id,
            Account.is_archived.is_(False),
            Account.balance_on_hold == 0,
            is_archived=True,
            archived_at=self.clock.now_utc(),
        )
        if rows == 0:
            account = self._require_active(user_id)
            raise InvalidStateError(
                f"Cannot archive account {user_id}: "
                f"{account.balance_on_hold} still on hold",
                current_state="holding",
                requested="archived",
            )

        account = self.get_account(user_id)
        logger.info(
            "account_archived",
            extra={"user_id": str(user_id), "balance": str(account.balance)},
        )
        return AccountSnapshot.from_model(account)

    # Hold primitives

    def hold(
        self,
        user_id: UUID,
        amount: Decimal,
        reason: str,
        campaign_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> AccountSnapshot:
        """
        Escrow ``amount`` of the available balance.

        Raises:
            InsufficientFundsError: available < amount.
        """
        amount = require_positive(amount)
        account = self._apply(
            user_id,
            EntryType.HOLD,
            amount,
            criteria=(_available >= amount,),
            balance_delta=Decimal("0"),
            hold_delta=amount,
            on_reject=lambda acct: self._insufficient(acct, amount),
            reason=reason,
            campaign_id=campaign_id,
            idempotency_key=idempotency_key,
        )
        logger.info("funds_held", extra=self._log_fields(account, amount, reason, campaign_id))
        return AccountSnapshot.from_model(account)

    def release(
        self,
        user_id: UUID,
        amount: Decimal,
        reason: str,
        campaign_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> AccountSnapshot:
        """
        Return ``amount`` of the held funds to the available balance.

        Raises:
            OverReleaseError: balance_on_hold < amount.
        """
        amount = require_positive(amount)
        account = self._apply(
            user_id,
            EntryType.RELEASE,
            amount,
            criteria=(Account.balance_on_hold >= amount,),
            balance_delta=Decimal("0"),
            hold_delta=-amount,
            on_reject=lambda acct: self._over_release(acct, amount),
            reason=reason,
            campaign_id=campaign_id,
            idempotency_key=idempotency_key,
        )
        logger.info("funds_released", extra=self._log_fields(account, amount, reason, campaign_id))
        return AccountSnapshot.from_model(account)

    def convert_held_to_spent(
        self,
        user_id: UUID,
        amount: Decimal,
        reason: str,
        campaign_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> AccountSnapshot:
        """
        Realize ``amount`` of held funds as spend: both hold and balance drop.

        Raises:
            OverReleaseError: balance_on_hold < amount.
        """
        amount = require_positive(amount)
        account = self._apply(
            user_id,
            EntryType.SPEND,
            amount,
            criteria=(Account.balance_on_hold >= amount,),
            balance_delta=-amount,
            hold_delta=-amount,
            on_reject=lambda acct: self._over_release(acct, amount),
            reason=reason,
            campaign_id=campaign_id,
            idempotency_key=idempotency_key,
            total_spent=Account.total_spent + amount,
        )
        logger.info(
            "held_converted_to_spent",
            extra=self._log_fields(account, amount, reason, campaign_id),
        )
        return AccountSnapshot.from_model(account)

    # External money movement

    def deposit(
        self,
        user_id: UUID,
        amount: Decimal,
        source: str,
        idempotency_key: str | None = None,
    ) -> AccountSnapshot:
        amount = require_positive(amount)
        account = self._apply(
            user_id,
            EntryType.DEPOSIT,
            amount,
            criteria=(),
            balance_delta=amount,
            hold_delta=Decimal("0"),
            on_reject=None,
            reason=source,
            idempotency_key=idempotency_key,
            total_earned=Account.total_earned + amount,
        )
        logger.info("funds_deposited", extra=self._log_fields(account, amount, source))
        return AccountSnapshot.from_model(account)

    def withdraw(
        self,
        user_id: UUID,
        amount: Decimal,
        destination: str,
        idempotency_key: str | None = None,
    ) -> AccountSnapshot:
        """
        Pay out ``amount`` of the available balance.

        Raises:
            ValidationError: amount below the minimum withdrawal.
            InsufficientFundsError: available < amount.
        """
        amount = require_positive(amount)
        if amount < self.minimum_withdrawal:
            raise ValidationError(
                f"Minimum withdrawal is {self.minimum_withdrawal}, got {amount}",
                field="amount",
            )
        account = self._apply(
            user_id,
            EntryType.WITHDRAWAL,
            amount,
            criteria=(_available >= amount,),
            balance_delta=-amount,
            hold_delta=Decimal("0"),
            on_reject=lambda acct: self._insufficient(acct, amount),
            reason=destination,
            idempotency_key=idempotency_key,
            total_withdrawn=Account.total_withdrawn + amount,
        )
        logger.info("funds_withdrawn", extra=self._log_fields(account, amount, destination))
        return AccountSnapshot.from_model(account)

    def transfer(
        self,
        from_user_id: UUID,
        to_user_id: UUID,
        amount: Decimal,
        reason: str,
        idempotency_key: str | None = None,
    ) -> TransferReceipt:
        """
        Move ``amount`` of available funds from one account to another.

        Both rows are locked in ascending user_id order first; the debit is
        then a conditional UPDATE like any other, and the credit cannot fail.

        Raises:
            ValidationError: from_user_id == to_user_id.
            InsufficientFundsError: available(from) < amount.
        """
        amount = require_positive(amount)
        if from_user_id == to_user_id:
            raise ValidationError("Cannot transfer to the same account", field="to_user_id")

        for user_id in sorted((from_user_id, to_user_id), key=str):
            locked = self._accounts.get_for_update(user_id=user_id)
            if locked is None:
                raise AccountNotFoundError(str(user_id))
            if locked.is_archived:
                raise self._archived(user_id)

        transfer_id = uuid4()
        source = self._apply(
            from_user_id,
            EntryType.TRANSFER_OUT,
            amount,
            criteria=(_available >= amount,),
            balance_delta=-amount,
            hold_delta=Decimal("0"),
            on_reject=lambda acct: self._insufficient(acct, amount),
            reason=reason,
            transfer_id=transfer_id,
            counterparty_user_id=to_user_id,
            idempotency_key=idempotency_key,
        )
        destination = self._apply(
            to_user_id,
            EntryType.TRANSFER_IN,
            amount,
            criteria=(),
            balance_delta=amount,
            hold_delta=Decimal("0"),
            on_reject=None,
            reason=reason,
            transfer_id=transfer_id,
            counterparty_user_id=from_user_id,
            idempotency_key=idempotency_key,
            total_earned=Account.total_earned + amount,
        )

        transferred_at = self.clock.now_utc()
        logger.info(
            "funds_transferred",
            extra={
                "transfer_id": str(transfer_id),
                "from_user_id": str(from_user_id),
                "to_user_id": str(to_user_id),
                "amount": str(amount),
                "reason": reason,
                "timestamp": transferred_at.isoformat(),
            },
        )
        return TransferReceipt(
            transfer_id=transfer_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
            reason=reason,
            transferred_at=transferred_at,
            source=AccountSnapshot.from_model(source),
            destination=AccountSnapshot.from_model(destination),
        )

    # Internals

    def _apply(
        self,
        user_id: UUID,
        entry_type: EntryType,
        amount: Decimal,
        *,
        criteria: tuple[ColumnElement[bool], ...],
        balance_delta: Decimal,
        hold_delta: Decimal,
        on_reject: Callable[[Account], NoReturn] | None,
        reason: str | None = None,
        campaign_id: UUID | None = None,
        transfer_id: UUID | None = None,
        counterparty_user_id: UUID | None = None,
        idempotency_key: str | None = None,
        **totals: Any,
    ) -> Account:
        """Run one conditional UPDATE and journal it; raise on zero rows."""
        now = self.clock.now_utc()
        rows = self._accounts.update_where(
            Account.user_id == user_id,
            Account.is_archived.is_(False),
            *criteria,
            balance=Account.balance + balance_delta,
            balance_on_hold=Account.balance_on_hold + hold_delta,
            version=Account.version + 1,
            last_transaction_at=now,
            **totals,
        )
        if rows == 0:
            account = self._require_active(user_id)
            if on_reject is not None:
                on_reject(account)
            raise InvalidStateError(
                f"Account {user_id} rejected {entry_type.value}",
                current_state="active",
                requested=entry_type.value,
            )

        account = self.get_account(user_id)
        self._entries.add(
            LedgerEntry(
                user_id=user_id,
                account_version=account.version,
                campaign_id=campaign_id,
                entry_type=entry_type.value,
                amount=amount,
                balance_delta=balance_delta,
                hold_delta=hold_delta,
                balance_after=account.balance,
                hold_after=account.balance_on_hold,
                reason=reason,
                transfer_id=transfer_id,
                counterparty_user_id=counterparty_user_id,
                idempotency_key=idempotency_key,
                created_at=now,
            )
        )
        return account

    def _require_active(self, user_id: UUID) -> Account:
        account = self.get_account(user_id)
        if account.is_archived:
            raise self._archived(user_id)
        return account

    @staticmethod
    def _archived(user_id: UUID) -> InvalidStateError:
        return InvalidStateError(
            f"Account {user_id} is archived",
            current_state="archived",
            requested="mutation",
        )

    @staticmethod
    def _insufficient(account: Account, amount: Decimal) -> NoReturn:
        raise InsufficientFundsError(
            str(account.user_id),
            required=amount,
            available=account.balance - account.balance_on_hold,
        )

    @staticmethod
    def _over_release(account: Account, amount: Decimal) -> NoReturn:
        raise OverReleaseError(
            str(account.user_id),
            requested=amount,
            held=account.balance_on_hold,
        )

    @staticmethod
    def _log_fields(
        account: Account,
        amount: Decimal,
        reason: str | None,
        campaign_id: UUID | None = None,
    ) -> dict[str, Any]:
        fields = {
            "user_id": str(account.user_id),
            "amount": str(amount),
            "reason": reason,
            "balance": str(account.balance),
            "balance_on_hold": str(account.balance_on_hold),
            "version": account.version,
        }
        if campaign_id is not None:
            fields["campaign_id"] = str(campaign_id)
        return fields
