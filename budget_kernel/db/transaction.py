"""
Module: budget_kernel.db.transaction
Responsibility: The unit-of-work runner.  Opens a session, runs one
    operation, commits or rolls back, and retries bounded contention
    failures with exponential backoff.
Architecture position: Kernel > DB.  Services never commit; the
    TransactionRunner is the sole owner of commit/rollback for calls that
    arrive through budget_services.

Invariants enforced:
    ATOMIC_MUTATION -- every call either commits fully or rolls back fully.
    Bounded retries -- contention is retried at most ``max_retries`` times,
    then surfaces as ConcurrencyConflictError(retryable).

Failure modes:
    - ConcurrencyConflictError: optimistic version mismatch, unique-key race
      (idempotency key, daily spend row) or transient lock failure
      (deadlock, serialization failure, SQLite "database is locked") that
      persisted beyond the retry budget.
    - StorageError: any other SQLAlchemyError, wrapped with the operation
      name and ids, logged with exc_info.
    - Business errors (BudgetKernelError) propagate unchanged after rollback.
"""

import time
from typing import Callable, TypeVar
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.exceptions import BudgetKernelError, ConcurrencyConflictError, StorageError
from budget_kernel.logging_config import LogContext, get_logger

logger = get_logger("db.transaction")

T = TypeVar("T")

# PostgreSQL SQLSTATEs that mean "retry the whole transaction"
_TRANSIENT_PGCODES = frozenset({"40001", "40P01", "55P03"})
_TRANSIENT_MESSAGES = ("deadlock", "database is locked", "could not serialize")


def _is_transient(exc: OperationalError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _TRANSIENT_PGCODES:
        return True
    message = str(exc.orig).lower()
    return any(fragment in message for fragment in _TRANSIENT_MESSAGES)


class TransactionRunner:
    """
    Runs a unit of work in its own transaction with bounded retries.

    Contract:
        ``run(work, operation=..., **ids)`` calls ``work(session)`` with a
        fresh session, commits on success and returns the result.  The
        whole unit is re-run from scratch on a retryable failure, so
        ``work`` must not have side effects outside the session.

    Guarantees:
        - A failed attempt never leaves partial writes (rollback).
        - At most ``max_retries + 1`` attempts.
        - Every attempt runs inside a LogContext carrying operation,
          correlation_id and the supplied ids.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        max_retries: int = 5,
        backoff_seconds: float = 0.01,
        backoff_multiplier: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._backoff_multiplier = backoff_multiplier
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def run(self, work: Callable[[Session], T], *, operation: str, **ids: object) -> T:
        """
        Execute ``work`` atomically.

        Args:
            work: Callable receiving the session; its return value is returned.
            operation: Operation name for logs and error context.
            **ids: user_id / campaign_id / idempotency_key for log context.

        Raises:
            ConcurrencyConflictError: Retry budget exhausted.
            StorageError: Non-transient database failure.
            BudgetKernelError: Business and validation errors, unchanged.
        """
        context = {k: str(v) for k, v in ids.items() if v is not None}
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation=operation,
            user_id=context.get("user_id"),
            campaign_id=context.get("campaign_id"),
            idempotency_key=context.get("idempotency_key"),
        ):
            attempt = 0
            while True:
                attempt += 1
                session = self._session_factory()
                try:
                    result = work(session)
                    session.commit()
                    return result
                except ConcurrencyConflictError as exc:
                    session.rollback()
                    self._retry_or_raise(exc, attempt, operation, exc.entity, exc.entity_id)
                except IntegrityError as exc:
                    session.rollback()
                    # Unique-key race with a concurrent writer of the same key
                    self._retry_or_raise(exc, attempt, operation, "transaction", operation)
                except OperationalError as exc:
                    session.rollback()
                    if not _is_transient(exc):
                        raise self._storage_error(exc, operation, context) from exc
                    self._retry_or_raise(exc, attempt, operation, "transaction", operation)
                except BudgetKernelError:
                    session.rollback()
                    raise
                except SQLAlchemyError as exc:
                    session.rollback()
                    raise self._storage_error(exc, operation, context) from exc
                except Exception:
                    session.rollback()
                    raise
                finally:
                    session.close()

    def _retry_or_raise(
        self,
        exc: Exception,
        attempt: int,
        operation: str,
        entity: str,
        entity_id: str,
    ) -> None:
        if attempt > self._max_retries:
            logger.warning(
                "transaction_retries_exhausted",
                extra={"attempts": attempt, "cause": type(exc).__name__},
            )
            raise ConcurrencyConflictError(entity, entity_id, attempts=attempt) from exc

        delay = self._backoff_seconds * (self._backoff_multiplier ** (attempt - 1))
        logger.info(
            "transaction_retry",
            extra={
                "attempt": attempt,
                "delay_seconds": delay,
                "cause": type(exc).__name__,
            },
        )
        self._sleep(delay)

    def _storage_error(
        self,
        exc: SQLAlchemyError,
        operation: str,
        context: dict[str, str],
    ) -> StorageError:
        logger.error(
            "storage_error",
            extra={"error_type": type(exc).__name__},
            exc_info=True,
        )
        return StorageError(operation, context, str(exc.orig if hasattr(exc, "orig") else exc))
