"""
Module: budget_kernel.db.repository
Responsibility: Generic persistence capability for one ORM model.  Services
    compose a Repository per model instead of inheriting static query
    helpers from a shared base class.
Architecture position: Kernel > DB.  May import from db/base.py only.

Invariants enforced:
    - Flush only: a Repository never commits or rolls back; the caller's
      transaction owns the boundary.
    - Fresh reads: ``get_by``/``get_for_update`` use populate_existing so a
      row changed by a bulk ``update_where`` is never served stale from the
      identity map.

Failure modes:
    - MultipleResultsFound if a ``get_by`` filter is not unique.
"""

from typing import Any, Generic, Sequence, TypeVar

from sqlalchemy import ColumnElement, select, update
from sqlalchemy.orm import Session

from budget_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class Repository(Generic[ModelType]):
    """
    Typed data access for a single model.

    Contract:
        Accepts a Session from the caller.  All writes are flushed within
        the caller's transaction.

    Non-goals:
        - Does NOT enforce business rules; services do.
    """

    def __init__(self, session: Session, model: type[ModelType]):
        self.session = session
        self.model = model

    def get_by(self, **filters: Any) -> ModelType | None:
        """Load one row matching equality ``filters`` (fresh from the DB)."""
        stmt = (
            select(self.model)
            .filter_by(**filters)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_for_update(self, **filters: Any) -> ModelType | None:
        """
        Load and row-lock one row.

        On PostgreSQL this is SELECT ... FOR UPDATE.  SQLite renders no
        lock clause; its transactions already hold the database write lock
        from BEGIN IMMEDIATE.
        """
        stmt = (
            select(self.model)
            .filter_by(**filters)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_where(
        self,
        *criteria: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ModelType]:
        stmt = select(self.model).where(*criteria).order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        return list(self.session.execute(stmt).scalars())

    def add(self, entity: ModelType) -> ModelType:
        """Persist a new entity and flush so constraint errors surface now."""
        self.session.add(entity)
        self.session.flush()
        return entity

    def update_where(self, *criteria: ColumnElement[bool], **values: Any) -> int:
        """
        Conditional bulk UPDATE; returns the number of rows affected.

        The WHERE clause is evaluated atomically by the database, so callers
        re-assert invariants in ``criteria`` and treat 0 rows as failure.
        """
        stmt = (
            update(self.model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount
