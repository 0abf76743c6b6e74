"""Read-only selectors over accounts, campaign budgets and the journal."""

from budget_kernel.selectors.base import BaseSelector
from budget_kernel.selectors.budget_forecaster import BudgetForecaster
from budget_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["BaseSelector", "BudgetForecaster", "LedgerSelector"]
