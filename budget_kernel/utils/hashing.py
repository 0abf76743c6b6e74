"""
Request fingerprints.

IdempotencyService stores ``hash_payload(request)`` next to every keyed
result.  A replay is accepted only when the new request hashes the same,
so the canonical form must not depend on dict order or on how an amount
was written: ``Decimal("300")`` and ``Decimal("300.00")`` are one amount.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _canonical_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        # normalize() of a zero keeps its exponent ("0E+2"); pin it
        return "0" if value.is_zero() else format(value.normalize(), "f")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Cannot fingerprint a {type(value).__name__}")


def canonicalize_json(data: Any) -> str:
    """Compact JSON with sorted keys and one spelling per Decimal/UUID/date/Enum."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_canonical_value)


def hash_payload(payload: dict) -> str:
    """SHA-256 hex digest of ``canonicalize_json(payload)``."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()
