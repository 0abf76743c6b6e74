"""Kernel services: session-bound, flush-only writers."""

from budget_kernel.services.account_ledger import AccountLedger
from budget_kernel.services.base import BaseService
from budget_kernel.services.campaign_budget_controller import CampaignBudgetController
from budget_kernel.services.campaign_lifecycle_gate import CampaignLifecycleGate
from budget_kernel.services.idempotency_service import IdempotencyService
from budget_kernel.services.spend_cap_enforcer import SpendCapEnforcer

__all__ = [
    "AccountLedger",
    "BaseService",
    "CampaignBudgetController",
    "CampaignLifecycleGate",
    "IdempotencyService",
    "SpendCapEnforcer",
]
