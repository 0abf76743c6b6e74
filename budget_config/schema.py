"""
Budget ledger configuration schema.

Frozen dataclasses produced by ``budget_config.loader`` from YAML.  Each
section maps one-to-one onto a top-level YAML key.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class LedgerConfig:
    minimum_withdrawal: Decimal = Decimal("10")
    currency: str = "USD"


@dataclass(frozen=True)
class ConcurrencyConfig:
    """Retry budget of TransactionRunner."""

    max_retries: int = 5
    backoff_seconds: float = 0.01
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class ForecastConfig:
    minimum_sample_days: int = 3
    schedule_tolerance_days: int = 0


@dataclass(frozen=True)
class LifecycleConfig:
    archive_after_days: int = 90


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///budget_ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class BudgetLedgerConfig:
    """
    The complete runtime configuration.

    ``checksum`` is the SHA-256 of the merged source mapping; two configs
    with equal checksums were built from identical settings.
    """

    config_id: str
    version: int
    ledger: LedgerConfig
    concurrency: ConcurrencyConfig
    forecast: ForecastConfig
    lifecycle: LifecycleConfig
    database: DatabaseConfig
    logging: LoggingConfig
    checksum: str = ""
