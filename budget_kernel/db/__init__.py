"""Database layer - engine, base classes, types, unit of work."""

from budget_kernel.db.base import UUID, Base, TimestampedBase, UUIDString
from budget_kernel.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
    drop_tables,
    session_scope,
)
from budget_kernel.db.repository import Repository
from budget_kernel.db.transaction import TransactionRunner
from budget_kernel.db.types import Currency, ExactMoney, Money

__all__ = [
    "Base",
    "TimestampedBase",
    "UUIDString",
    "UUID",
    "Money",
    "ExactMoney",
    "Currency",
    "Repository",
    "TransactionRunner",
    "create_engine_from_url",
    "create_session_factory",
    "create_tables",
    "drop_tables",
    "session_scope",
]
