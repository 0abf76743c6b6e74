"""
Idempotency key generation utilities.

Callers that derive keys from upstream events (the performance-ingestion
pipeline, payment webhooks) build them here so the same event always maps
to the same key.
"""

from uuid import UUID

MAX_KEY_LENGTH = 200


def generate_idempotency_key(
    producer: str,
    operation: str,
    event_id: UUID | str,
) -> str:
    """
    Generate an idempotency key for an upstream event.

    Format: producer:operation:event_id

    Example:
        >>> generate_idempotency_key("ingestion", "process_spend", "batch-42")
        'ingestion:process_spend:batch-42'
    """
    return f"{producer}:{operation}:{event_id}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Parse an idempotency key into (producer, operation, event_id).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
