"""ORM models of the budget custody ledger."""

from budget_kernel.models.account import Account
from budget_kernel.models.campaign_budget import (
    ApprovalStatus,
    CampaignBudget,
    CampaignStatus,
)
from budget_kernel.models.daily_spend import DailySpendRecord
from budget_kernel.models.idempotency import IdempotencyRecord
from budget_kernel.models.ledger_entry import EntryType, LedgerEntry

__all__ = [
    "Account",
    "ApprovalStatus",
    "CampaignBudget",
    "CampaignStatus",
    "DailySpendRecord",
    "EntryType",
    "IdempotencyRecord",
    "LedgerEntry",
]
