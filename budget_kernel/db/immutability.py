"""
ORM-level immutability enforcement for the money journal.

LedgerEntry rows are the audit trail of every balance and hold mutation.
They are written once and never changed: corrections are new entries.

SQLAlchemy fires mapper events before UPDATE/DELETE statements are emitted
for a flushed object.  The listeners registered here intercept those events
for LedgerEntry and raise ImmutabilityViolationError, so the transaction is
aborted before the database is touched.

    session.flush()
         |
         v
    [before_update] --> _check_ledger_entry_update() --> ImmutabilityViolationError
    [before_delete] --> _check_ledger_entry_delete() --> ImmutabilityViolationError

Bulk ``update()``/``delete()`` statements bypass mapper events; the kernel
never issues them against ledger_entries.

Usage:

    from budget_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent, called by the service facade

Tests that need to stage forbidden states may call
unregister_immutability_listeners() and re-register afterwards.
"""

from sqlalchemy import event

from budget_kernel.exceptions import ImmutabilityViolationError
from budget_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_ledger_entry_update(mapper, connection, target):
    """Block any UPDATE of a persisted ledger entry."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "LedgerEntry",
            "entity_id": str(target.id),
            "statement": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="LedgerEntry",
        entity_id=str(target.id),
        reason="Ledger entries are append-only",
    )


def _check_ledger_entry_delete(mapper, connection, target):
    """Block any DELETE of a persisted ledger entry."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "LedgerEntry",
            "entity_id": str(target.id),
            "statement": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="LedgerEntry",
        entity_id=str(target.id),
        reason="Ledger entries cannot be deleted",
    )


def register_immutability_listeners():
    """Install the journal listeners.  Safe to call more than once."""
    from budget_kernel.models.ledger_entry import LedgerEntry

    if not event.contains(LedgerEntry, "before_update", _check_ledger_entry_update):
        event.listen(LedgerEntry, "before_update", _check_ledger_entry_update)
    if not event.contains(LedgerEntry, "before_delete", _check_ledger_entry_delete):
        event.listen(LedgerEntry, "before_delete", _check_ledger_entry_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """Remove the journal listeners (tests only)."""
    from budget_kernel.models.ledger_entry import LedgerEntry

    _safe_remove_listener(LedgerEntry, "before_update", _check_ledger_entry_update)
    _safe_remove_listener(LedgerEntry, "before_delete", _check_ledger_entry_delete)
