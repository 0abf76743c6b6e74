"""
Module: budget_kernel.db.types
Responsibility: The exact money column type, the Money/Currency column
    aliases, and the one rounding helper used for derived money figures
    (averages, ratios).
Architecture position: Kernel > DB.  Importable from models/, domain/,
    services/ and selectors/; imports only MONEY_SCALE from
    domain/amounts.py.

Invariants enforced:
    - Stored money keeps exactly MONEY_SCALE (9) decimal places on every
      dialect.  PostgreSQL stores NUMERIC(38, 9).  SQLite has no exact
      decimal storage, so there the value is kept as an integer count of
      10^-9 units and every SQL-side sum, difference and comparison is
      integer arithmetic.
    - A value with more than MONEY_SCALE decimal places is refused at bind
      time, never truncated.
    - Only derived, display-level figures are rounded, and only through
      round_money().

Failure modes:
    - ValueError (raised as sqlalchemy.exc.StatementError during flush)
      when a bound value is finer than MONEY_SCALE.
    - SQLite integers are 64-bit, so a single SQLite money value is
      limited to about 9.2 billion units of currency.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String
from sqlalchemy.types import TypeDecorator

from budget_kernel.domain.amounts import MONEY_SCALE

MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_SCALE)


class ExactMoney(TypeDecorator):
    """
    Decimal money stored exactly: NUMERIC(38, 9), or scaled integers on SQLite.

    Always returns a Decimal with MONEY_SCALE decimal places.
    """

    impl = Numeric(38, MONEY_SCALE)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return dialect.type_descriptor(Numeric(38, MONEY_SCALE))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        amount = Decimal(value)
        exact = amount.quantize(MONEY_QUANTUM)
        if exact != amount:
            raise ValueError(
                f"{amount} has more than {MONEY_SCALE} decimal places"
            )
        if dialect.name == "sqlite":
            return int(exact.scaleb(MONEY_SCALE))
        return exact

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            return Decimal(int(value)).scaleb(-MONEY_SCALE)
        return Decimal(value).quantize(MONEY_QUANTUM)


Money = Annotated[Decimal, ExactMoney()]

# ISO 4217 code, e.g. "USD"
Currency = Annotated[str, String(3)]


def round_money(value: Decimal, decimal_places: int = 2, rounding: str = ROUND_HALF_UP) -> Decimal:
    """Quantize ``value`` to ``decimal_places`` (cents by default)."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)


def is_currency_code(value: str) -> bool:
    """Three upper-case ASCII letters."""
    return len(value) == 3 and value.isascii() and value.isalpha() and value.isupper()
