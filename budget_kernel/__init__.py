"""
Budget Kernel - advertising budget custody ledger.

Holds every advertiser's monetary balance with:
- Escrowed holds against campaigns
- Atomic, invariant-reasserting balance mutations
- Idempotent mutating calls
- Append-only ledger journal for reconciliation
- Campaign lifecycle gating of budget operations
"""

__version__ = "0.1.0"
