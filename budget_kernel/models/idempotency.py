"""
Module: budget_kernel.models.idempotency
Responsibility: ORM persistence for idempotency records -- the stored
    outcome of every keyed mutation, so a retried request replays the
    original result instead of repeating the side effect.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    IDEMPOTENCY -- one record per key (UNIQUE uq_idempotency_key).  The
        record is written in the same transaction as the mutation it
        describes, so it exists if and only if the mutation committed.

Failure modes:
    - IntegrityError on a concurrent first use of the same key; the losing
      transaction is retried by TransactionRunner and replays.
"""

from typing import Any

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import TimestampedBase


class IdempotencyRecord(TimestampedBase):
    """
    Outcome of a committed keyed operation.

    Contract:
        ``operation`` and ``request_hash`` bind the key to one request; a
        key presented again with a different operation or different
        arguments is rejected rather than replayed.
    """

    __tablename__ = "idempotency_records"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_idempotency_key"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)

    operation: Mapped[str] = mapped_column(String(50), nullable=False)

    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    result: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<IdempotencyRecord {self.idempotency_key} {self.operation}>"
