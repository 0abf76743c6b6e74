"""
Pure domain layer.

Value objects, the campaign lifecycle table and forecast math, with no
dependency on the ORM, the database or the wall clock.
"""

from budget_kernel.domain.clock import Clock, DeterministicClock, SystemClock, ensure_utc
from budget_kernel.domain.dtos import (
    AccountSnapshot,
    AffordabilityCheck,
    BudgetAdjustment,
    BudgetForecast,
    BudgetSnapshot,
    CampaignTransition,
    DailySpend,
    LedgerEntryRecord,
    PlatformStatistics,
    ReconciliationResult,
    RoiSummary,
    SettlementResult,
    SpendResult,
    TransferReceipt,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ensure_utc",
    "AccountSnapshot",
    "AffordabilityCheck",
    "BudgetAdjustment",
    "BudgetForecast",
    "BudgetSnapshot",
    "CampaignTransition",
    "DailySpend",
    "LedgerEntryRecord",
    "PlatformStatistics",
    "ReconciliationResult",
    "RoiSummary",
    "SettlementResult",
    "SpendResult",
    "TransferReceipt",
]
