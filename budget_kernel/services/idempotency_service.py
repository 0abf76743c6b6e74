"""
Module: budget_kernel.services.idempotency_service
Responsibility: Exactly-once execution of keyed mutating calls.  The first
    call with a key runs the operation and stores its result; every later
    call with the same key returns the stored result without re-running it.
Architecture position: Kernel > Services.  Wraps AccountLedger and
    CampaignBudgetController operations inside the caller's transaction.

Invariants enforced:
    IDEMPOTENCY -- the result record is inserted in the same transaction as
        the mutation, under the uq_idempotency_key constraint.  Two
        concurrent first uses of one key cannot both commit; the loser's
        IntegrityError is retried by TransactionRunner and then replays.

Failure modes:
    - IdempotencyKeyReuseError: the key was first used for a different
      operation, or for the same operation with different arguments.
    - IntegrityError: concurrent first use (retried by the runner).

Audit relevance:
    request_hash ties each stored result to the exact request that produced
    it; a replay with altered arguments is rejected, never silently served.
"""

from typing import Any, Callable, TypeVar

from sqlalchemy.orm import Session

from budget_kernel.db.repository import Repository
from budget_kernel.domain.dtos import ReplayableResult
from budget_kernel.exceptions import IdempotencyKeyReuseError, ValidationError
from budget_kernel.logging_config import get_logger
from budget_kernel.models.idempotency import IdempotencyRecord
from budget_kernel.utils.hashing import hash_payload
from budget_kernel.utils.idempotency import MAX_KEY_LENGTH

logger = get_logger("services.idempotency")

R = TypeVar("R", bound=ReplayableResult)


class IdempotencyService:
    """
    Stores and replays results of keyed operations.

    Contract:
        ``execute(key, operation, request, result_type, work)`` returns
        ``work()`` on first use and ``result_type.from_dict(stored)`` on
        every replay.  A ``None`` key runs ``work()`` unguarded.

    Non-goals:
        - Does NOT expire records; keys are permanent.
    """

    def __init__(self, session: Session):
        self.session = session
        self._records = Repository(session, IdempotencyRecord)

    def execute(
        self,
        idempotency_key: str | None,
        operation: str,
        request: dict[str, Any],
        result_type: type[R],
        work: Callable[[], R],
    ) -> R:
        if idempotency_key is None:
            return work()

        self._validate_key(idempotency_key)
        request_hash = hash_payload(request)

        stored = self.lookup(idempotency_key, operation, request_hash)
        if stored is not None:
            return result_type.from_dict(stored)

        result = work()
        self._records.add(
            IdempotencyRecord(
                idempotency_key=idempotency_key,
                operation=operation,
                request_hash=request_hash,
                result=result.to_dict(),
            )
        )
        return result

    def lookup(
        self,
        idempotency_key: str,
        operation: str,
        request_hash: str,
    ) -> dict[str, Any] | None:
        """
        Return the stored result for ``idempotency_key`` or None.

        Raises:
            IdempotencyKeyReuseError: Key bound to another operation or request.
        """
        record = self._records.get_by(idempotency_key=idempotency_key)
        if record is None:
            return None

        if record.operation != operation or record.request_hash != request_hash:
            logger.warning(
                "idempotency_key_reuse_rejected",
                extra={
                    "idempotency_key": idempotency_key,
                    "operation": operation,
                    "original_operation": record.operation,
                },
            )
            raise IdempotencyKeyReuseError(idempotency_key, operation, record.operation)

        logger.info(
            "idempotent_replay",
            extra={"idempotency_key": idempotency_key, "operation": operation},
        )
        return record.result

    @staticmethod
    def _validate_key(idempotency_key: str) -> None:
        if not idempotency_key or len(idempotency_key) > MAX_KEY_LENGTH:
            raise ValidationError(
                f"idempotency_key must be 1-{MAX_KEY_LENGTH} characters",
                field="idempotency_key",
            )
