"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable results returned by every kernel service and selector.
    Callers never receive ORM entities, so a result stays valid after the
    session that produced it is closed.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` class methods are
    boundary converters invoked only from services/ and selectors/.

Replay:
    Results of keyed mutations are stored by IdempotencyService as JSON and
    rehydrated on replay.  ``ReplayableResult.to_dict()`` / ``from_dict()``
    perform that conversion using the dataclass field types: Decimal, UUID,
    datetime and date travel as strings, nested results as dicts.
"""

from __future__ import annotations

import dataclasses
import types
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Union, get_args, get_origin, get_type_hints
from uuid import UUID

from budget_kernel.domain.clock import ensure_utc

if TYPE_CHECKING:
    from budget_kernel.models.account import Account as AccountModel
    from budget_kernel.models.campaign_budget import CampaignBudget as CampaignBudgetModel
    from budget_kernel.models.ledger_entry import LedgerEntry as LedgerEntryModel


def _encode(value: Any) -> Any:
    if isinstance(value, ReplayableResult):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _decode(annotation: Any, value: Any) -> Any:
    if value is None:
        return None
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        return _decode(members[0], value)
    if annotation is Decimal:
        return Decimal(value)
    if annotation is UUID:
        return UUID(value)
    if annotation is datetime:
        return datetime.fromisoformat(value)
    if annotation is date:
        return date.fromisoformat(value)
    if isinstance(annotation, type) and issubclass(annotation, ReplayableResult):
        return annotation.from_dict(value)
    return value


class ReplayableResult:
    """
    Mixin for dataclass results that can be stored and replayed.

    Contract:
        Subclasses are frozen dataclasses whose fields are JSON scalars,
        Decimal, UUID, datetime, date or other ReplayableResult types
        (optionally ``| None``).
    """

    def to_dict(self) -> dict[str, Any]:
        return {
            f.name: _encode(getattr(self, f.name))
            for f in dataclasses.fields(self)  # type: ignore[arg-type]
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        hints = get_type_hints(cls)
        kwargs = {
            f.name: _decode(hints[f.name], data.get(f.name))
            for f in dataclasses.fields(cls)  # type: ignore[arg-type]
        }
        return cls(**kwargs)


# Account results


@dataclass(frozen=True)
class AccountSnapshot(ReplayableResult):
    """Point-in-time view of an account after a read or a mutation."""

    user_id: UUID
    balance: Decimal
    balance_on_hold: Decimal
    available: Decimal
    total_earned: Decimal
    total_spent: Decimal
    total_withdrawn: Decimal
    version: int
    last_transaction_at: datetime | None
    is_archived: bool

    @classmethod
    def from_model(cls, account: AccountModel) -> AccountSnapshot:
        return cls(
            user_id=account.user_id,
            balance=account.balance,
            balance_on_hold=account.balance_on_hold,
            available=account.balance - account.balance_on_hold,
            total_earned=account.total_earned,
            total_spent=account.total_spent,
            total_withdrawn=account.total_withdrawn,
            version=account.version,
            last_transaction_at=ensure_utc(account.last_transaction_at),
            is_archived=account.is_archived,
        )


@dataclass(frozen=True)
class TransferReceipt(ReplayableResult):
    """Both legs of a completed transfer."""

    transfer_id: UUID
    from_user_id: UUID
    to_user_id: UUID
    amount: Decimal
    reason: str
    transferred_at: datetime
    source: AccountSnapshot
    destination: AccountSnapshot


@dataclass(frozen=True)
class AffordabilityCheck:
    user_id: UUID
    can_afford: bool
    available: Decimal
    required: Decimal
    shortage: Decimal


# Campaign budget results


@dataclass(frozen=True)
class BudgetSnapshot(ReplayableResult):
    """Point-in-time view of a campaign budget."""

    campaign_id: UUID
    user_id: UUID
    status: str
    approval_status: str
    budget_total: Decimal
    budget_daily: Decimal | None
    budget_spent: Decimal
    remaining: Decimal
    currency: str
    creative_count: int
    targeting_configured: bool
    start_date: date | None
    end_date: date | None
    launched_at: datetime | None
    completed_at: datetime | None
    archived_at: datetime | None
    settled_at: datetime | None
    released_amount: Decimal | None
    version: int

    @classmethod
    def from_model(cls, budget: CampaignBudgetModel) -> BudgetSnapshot:
        return cls(
            campaign_id=budget.campaign_id,
            user_id=budget.user_id,
            status=budget.status,
            approval_status=budget.approval_status,
            budget_total=budget.budget_total,
            budget_daily=budget.budget_daily,
            budget_spent=budget.budget_spent,
            remaining=budget.budget_total - budget.budget_spent,
            currency=budget.currency,
            creative_count=budget.creative_count,
            targeting_configured=budget.targeting_configured,
            start_date=budget.start_date,
            end_date=budget.end_date,
            launched_at=ensure_utc(budget.launched_at),
            completed_at=ensure_utc(budget.completed_at),
            archived_at=ensure_utc(budget.archived_at),
            settled_at=ensure_utc(budget.settled_at),
            released_amount=budget.released_amount,
            version=budget.version,
        )


@dataclass(frozen=True)
class BudgetAdjustment(ReplayableResult):
    """Outcome of adjust_budget: how much was additionally held or released."""

    campaign_id: UUID
    previous_total: Decimal
    new_total: Decimal
    held: Decimal
    released: Decimal
    budget: BudgetSnapshot


@dataclass(frozen=True)
class SpendResult(ReplayableResult):
    campaign_id: UUID
    amount: Decimal
    budget_spent: Decimal
    budget_remaining: Decimal
    today_spent: Decimal
    spend_date: date
    account: AccountSnapshot


@dataclass(frozen=True)
class SettlementResult(ReplayableResult):
    """
    Release of a campaign's unspent reservation.

    ``released`` is 0 and ``already_settled`` is True on every call after
    the first.
    """

    campaign_id: UUID
    user_id: UUID
    released: Decimal
    settled_at: datetime
    already_settled: bool


@dataclass(frozen=True)
class CampaignTransition(ReplayableResult):
    """A lifecycle status change, with the settlement it triggered if any."""

    campaign_id: UUID
    action: str
    previous_status: str
    status: str
    budget: BudgetSnapshot
    settlement: SettlementResult | None = None


# Read-side results


@dataclass(frozen=True)
class DailySpend:
    spend_date: date
    amount_spent: Decimal


@dataclass(frozen=True)
class BudgetForecast:
    """
    Advisory projection of a campaign's spend.

    estimated_days_remaining is Decimal('Infinity') and
    projected_exhaustion_date is None when nothing is being spent.
    """

    campaign_id: UUID
    budget_total: Decimal
    budget_spent: Decimal
    remaining: Decimal
    days_active: int
    daily_burn_rate: Decimal
    estimated_days_remaining: Decimal
    projected_exhaustion_date: date | None
    end_date: date | None
    schedule_status: str
    will_exceed_schedule: bool
    confidence: str
    sample_days: int


@dataclass(frozen=True)
class RoiSummary:
    campaign_id: UUID
    revenue: Decimal
    spent: Decimal
    profit: Decimal
    roi_percent: Decimal
    roas: Decimal
    break_even: bool


@dataclass(frozen=True)
class PlatformStatistics:
    """Totals across all non-archived accounts."""

    account_count: int
    total_balance: Decimal
    total_on_hold: Decimal
    total_available: Decimal
    total_earned: Decimal
    total_spent: Decimal
    total_withdrawn: Decimal
    average_balance: Decimal


@dataclass(frozen=True)
class LedgerEntryRecord:
    """Read-only view of one journal line."""

    entry_id: UUID
    user_id: UUID
    account_version: int
    campaign_id: UUID | None
    entry_type: str
    amount: Decimal
    balance_delta: Decimal
    hold_delta: Decimal
    balance_after: Decimal
    hold_after: Decimal
    reason: str | None
    transfer_id: UUID | None
    counterparty_user_id: UUID | None
    idempotency_key: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, entry: LedgerEntryModel) -> LedgerEntryRecord:
        return cls(
            entry_id=entry.id,
            user_id=entry.user_id,
            account_version=entry.account_version,
            campaign_id=entry.campaign_id,
            entry_type=entry.entry_type,
            amount=entry.amount,
            balance_delta=entry.balance_delta,
            hold_delta=entry.hold_delta,
            balance_after=entry.balance_after,
            hold_after=entry.hold_after,
            reason=entry.reason,
            transfer_id=entry.transfer_id,
            counterparty_user_id=entry.counterparty_user_id,
            idempotency_key=entry.idempotency_key,
            created_at=ensure_utc(entry.created_at),
        )


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Stored account balances compared with the sums of the journal.

    ``is_balanced`` is True only when both balance and hold agree and the
    journal's version sequence has no gaps.
    """

    user_id: UUID
    stored_balance: Decimal
    journal_balance: Decimal
    stored_hold: Decimal
    journal_hold: Decimal
    entry_count: int
    account_version: int
    is_balanced: bool

    @property
    def balance_difference(self) -> Decimal:
        return self.stored_balance - self.journal_balance

    @property
    def hold_difference(self) -> Decimal:
        return self.stored_hold - self.journal_hold
