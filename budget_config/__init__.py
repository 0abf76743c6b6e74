"""
budget_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration.  Sits above ``budget_kernel`` and below
    ``budget_services``.  The kernel MUST NEVER import from
    ``budget_config``; the service facade passes plain values from the
    config into kernel constructors.

Resolution order:
    1. ``budget_config/sets/default.yaml``
    2. Override file: the ``path`` argument, else ``BUDGET_LEDGER_CONFIG``
    3. ``DATABASE_URL`` replaces ``database.url``

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ValueError`` -- invalid section, key or value.

Audit relevance:
    Every call emits a ``BUDGET_CONFIG_TRACE`` log entry with the config
    id, version and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from budget_config.loader import load_yaml_file, merge, parse_config
from budget_config.schema import BudgetLedgerConfig

_logger = logging.getLogger("budget_kernel.config")

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "BUDGET_LEDGER_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> BudgetLedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Optional override YAML file.  Defaults to the file named by
            ``BUDGET_LEDGER_CONFIG``, if set.
        environ: Environment mapping (defaults to ``os.environ``).

    Raises:
        FileNotFoundError: If the override file is missing.
        ValueError: If validation fails.
    """
    env = os.environ if environ is None else environ
    data = load_yaml_file(_DEFAULT_CONFIG_FILE)

    override_path = path or env.get(CONFIG_PATH_ENV)
    if override_path:
        data = merge(data, load_yaml_file(Path(override_path)))

    database_url = env.get(DATABASE_URL_ENV)
    if database_url:
        data = merge(data, {"database": {"url": database_url}})

    config = parse_config(data)
    _logger.info(
        "BUDGET_CONFIG_TRACE",
        extra={
            "trace_type": "BUDGET_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "override": str(override_path) if override_path else None,
        },
    )
    return config


__all__ = ["BudgetLedgerConfig", "get_active_config"]
