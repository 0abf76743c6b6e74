"""
Module: budget_kernel.db.base
Responsibility: Declarative base shared by every custody table: UUID
    primary keys, the Python-type to column-type map that keeps money in
    exact ExactMoney columns, constraint naming, and row timestamps.
Architecture position: Kernel > DB, the bottom of the kernel import graph.
    Imported by every model; imports nothing from models/, services/,
    selectors/ or domain/.

Invariants enforced:
    - Money columns use ExactMoney.  A ``Mapped[Decimal]`` annotation can
      never become a float column, on SQLite included.
    - Identifiers (row ids, user ids, campaign ids) round-trip as uuid.UUID
      on every dialect.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from budget_kernel.db.types import ExactMoney

# Names for constraints declared without one (foreign keys, anonymous indexes)
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """
    uuid.UUID persisted as its canonical 36-character string.

    Accepts UUID objects or their string form on the way in and always
    returns UUID objects.  The canonical string sorts like the UUID, so
    ORDER BY on the column matches ``sorted()`` in Python (transfer lock
    ordering depends on this).
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, UUID) else UUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Every model gets a uuid4 ``id`` primary key."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: ExactMoney(),
        datetime: DateTime(timezone=True),
        date: Date,
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TimestampedBase(Base):
    """
    Adds ``created_at`` (database clock, set once) and ``updated_at``
    (refreshed by every ORM or Core UPDATE issued through the mapper).

    Business timestamps (launched_at, last_transaction_at, ...) come from
    the injected Clock instead; these two are bookkeeping only.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
