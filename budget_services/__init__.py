"""
budget_services -- Package init and public API.

Responsibility:
    The transactional facade over budget_kernel.  Owns the engine, session
    factory, clock and retry policy, and turns each external call into one
    unit of work.

Architecture position:
    Services -- composition root.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        budget_services/ -> budget_kernel/  (allowed)
        budget_services/ -> budget_config/  (allowed)
        budget_kernel/   -> budget_services/ (FORBIDDEN)
        budget_kernel/   -> budget_config/   (FORBIDDEN)

Invariants enforced:
    - DI transparency: all kernel service wiring is centralised in
      CustodyOrchestrator; no kernel service self-constructs dependencies.

Audit relevance:
    - This package is the canonical import surface for external consumers.
"""

from budget_services.custody_service import BudgetCustodyService
from budget_services.orchestrator import CustodyOrchestrator, CustodySettings

__all__ = [
    "BudgetCustodyService",
    "CustodyOrchestrator",
    "CustodySettings",
]
