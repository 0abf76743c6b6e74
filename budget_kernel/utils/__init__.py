"""Utility functions for the budget kernel."""

from budget_kernel.utils.hashing import canonicalize_json, hash_payload
from budget_kernel.utils.idempotency import (
    generate_idempotency_key,
    parse_idempotency_key,
)

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "generate_idempotency_key",
    "parse_idempotency_key",
]
