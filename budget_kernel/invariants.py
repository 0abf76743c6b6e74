"""
Kernel Invariants Contract.

These invariants are structural law for the custody ledger. They are
enforced by conditional updates, version checks, CHECK constraints and
ORM listeners. No configuration value may override them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across AccountLedger, CampaignBudgetController,
IdempotencyService, TransactionRunner and db/immutability.py.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    HOLD_WITHIN_BALANCE = "hold_within_balance"
    """0 <= balance_on_hold <= balance for every account after every
    commit. Enforced by conditional UPDATEs in AccountLedger and by the
    ck_account_hold_within_balance CHECK constraint."""

    SPEND_WITHIN_BUDGET = "spend_within_budget"
    """0 <= budget_spent <= budget_total for every campaign. Enforced by
    CampaignBudgetController and the ck_campaign_spend_within_total CHECK
    constraint."""

    HOLD_MATCHES_REMAINING_BUDGET = "hold_matches_remaining_budget"
    """While a campaign is not completed/archived, the hold attributable to
    it equals budget_total - budget_spent. Enforced by moving hold and
    budget fields in the same transaction."""

    ATOMIC_MUTATION = "atomic_mutation"
    """Every mutating call commits fully or not at all. Enforced by
    TransactionRunner (services flush, never commit)."""

    IDEMPOTENCY = "idempotency"
    """A mutating call replayed with the same idempotency key has no
    additional effect. Enforced by IdempotencyService and the
    uq_idempotency_key unique constraint."""

    LOCK_ORDERING = "lock_ordering"
    """Multi-account operations lock rows in ascending user_id order.
    Enforced by AccountLedger.transfer."""

    JOURNAL_IMMUTABILITY = "journal_immutability"
    """Ledger entries are append-only. Enforced by ORM listeners in
    budget_kernel.db.immutability."""


# All invariants as a frozenset for programmatic checks.
ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "budget_services",
    "budget_config",
)
