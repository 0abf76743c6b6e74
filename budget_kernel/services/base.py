"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every mutating service in the kernel layer.  Services receive a
    SQLAlchemy ``Session`` and an injected ``Clock``; they persist through
    Repository objects they compose, using ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    ATOMIC_MUTATION -- services flush within the caller's transaction and
        never commit or roll back themselves.  TransactionRunner (or a test
        harness) owns commit/rollback, so a multi-step operation such as
        process_spend commits all of its writes or none of them.

Failure modes:
    - If a subclass calls ``session.commit()``, a later failure in the same
      call would leave earlier writes committed, breaking atomicity.
"""

from abc import ABC

from sqlalchemy.orm import Session

from budget_kernel.domain.clock import Clock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a ``Session`` and a ``Clock`` from the caller.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide query-only (read) methods -- those belong
          in ``budget_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock):
        self.session = session
        self.clock = clock
