"""
Configuration Loader (``budget_config.loader``).

Responsibility
--------------
Loads YAML files, merges overrides onto the defaults, and parses the
result into the frozen dataclasses of ``budget_config.schema``.  The single
public entry point for runtime config is ``budget_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` with the offending key named.
* Money values are parsed to ``Decimal`` from their string form, never
  through float.
* ``compute_checksum`` is deterministic for equal mappings.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, wrong type, out-of-range value -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from budget_config.schema import (
    BudgetLedgerConfig,
    ConcurrencyConfig,
    DatabaseConfig,
    ForecastConfig,
    LedgerConfig,
    LifecycleConfig,
    LoggingConfig,
)

_SECTIONS = ("ledger", "concurrency", "forecast", "lifecycle", "database", "logging")
_TOP_LEVEL = frozenset(_SECTIONS) | {"config_id", "version"}
_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively overlay ``override`` onto ``base`` (neither is modified)."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any]) -> BudgetLedgerConfig:
    """
    Parse a merged configuration mapping.

    Raises:
        ValueError: on unknown keys or invalid values.
    """
    unknown = set(data) - _TOP_LEVEL
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    sections = {}
    for name in _SECTIONS:
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Configuration section '{name}' must be a mapping")
        sections[name] = section

    return BudgetLedgerConfig(
        config_id=str(data.get("config_id", "default")),
        version=_int(data, "version", 1, minimum=1),
        ledger=parse_ledger(sections["ledger"]),
        concurrency=parse_concurrency(sections["concurrency"]),
        forecast=parse_forecast(sections["forecast"]),
        lifecycle=parse_lifecycle(sections["lifecycle"]),
        database=parse_database(sections["database"]),
        logging=parse_logging(sections["logging"]),
        checksum=compute_checksum(data),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerConfig:
    _reject_unknown("ledger", data, {"minimum_withdrawal", "currency"})
    raw = data.get("minimum_withdrawal", "10")
    if isinstance(raw, float):
        raw = str(raw)
    try:
        minimum = Decimal(raw)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"ledger.minimum_withdrawal is not a number: {raw!r}") from exc
    if not minimum.is_finite() or minimum <= 0:
        raise ValueError(f"ledger.minimum_withdrawal must be positive, got {raw!r}")

    currency = data.get("currency", "USD")
    if not (isinstance(currency, str) and len(currency) == 3 and currency.isalpha() and currency.isupper()):
        raise ValueError(f"ledger.currency must be an ISO 4217 code, got {currency!r}")
    return LedgerConfig(minimum_withdrawal=minimum, currency=currency)


def parse_concurrency(data: dict[str, Any]) -> ConcurrencyConfig:
    _reject_unknown("concurrency", data, {"max_retries", "backoff_seconds", "backoff_multiplier"})
    backoff = _float(data, "backoff_seconds", 0.01)
    multiplier = _float(data, "backoff_multiplier", 2.0)
    if backoff < 0:
        raise ValueError("concurrency.backoff_seconds must not be negative")
    if multiplier < 1:
        raise ValueError("concurrency.backoff_multiplier must be at least 1")
    return ConcurrencyConfig(
        max_retries=_int(data, "max_retries", 5, minimum=0),
        backoff_seconds=backoff,
        backoff_multiplier=multiplier,
    )


def parse_forecast(data: dict[str, Any]) -> ForecastConfig:
    _reject_unknown("forecast", data, {"minimum_sample_days", "schedule_tolerance_days"})
    return ForecastConfig(
        minimum_sample_days=_int(data, "minimum_sample_days", 3, minimum=1),
        schedule_tolerance_days=_int(data, "schedule_tolerance_days", 0, minimum=0),
    )


def parse_lifecycle(data: dict[str, Any]) -> LifecycleConfig:
    _reject_unknown("lifecycle", data, {"archive_after_days"})
    return LifecycleConfig(archive_after_days=_int(data, "archive_after_days", 90, minimum=0))


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    _reject_unknown("database", data, {"url", "echo", "pool_size", "max_overflow"})
    url = data.get("url", "sqlite:///budget_ledger.db")
    if not isinstance(url, str) or not url:
        raise ValueError("database.url must be a non-empty string")
    echo = data.get("echo", False)
    if not isinstance(echo, bool):
        raise ValueError("database.echo must be a boolean")
    return DatabaseConfig(
        url=url,
        echo=echo,
        pool_size=_int(data, "pool_size", 20, minimum=1),
        max_overflow=_int(data, "max_overflow", 10, minimum=0),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    _reject_unknown("logging", data, {"level"})
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level is not a logging level: {level!r}")
    return LoggingConfig(level=level)


def _reject_unknown(section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {sorted(unknown)}")


def _int(data: dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{key} must be at least {minimum}, got {value}")
    return value


def _float(data: dict[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return float(value)
