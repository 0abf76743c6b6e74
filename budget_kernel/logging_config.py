"""
Module: budget_kernel.logging_config
Responsibility: Structured JSON logging for every kernel and service call.
    One JSON object per line, carrying the call-scoped context (correlation
    id, operation, user, campaign, idempotency key) that TransactionRunner
    binds around each unit of work.
Architecture position: Kernel, imported by every layer.  Depends on
    nothing else in budget_kernel.

Audit relevance:
    Mutation events (funds_held, spend_processed, budget_settled, ...) form
    the operational trail next to the ledger journal.  ``correlation_id``
    ties together every line of one call, retries included.
"""

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, TextIO
from uuid import UUID

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

ROOT_LOGGER = "budget_kernel"

CONTEXT_FIELDS = ("correlation_id", "operation", "user_id", "campaign_id", "idempotency_key")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("budget_log_context", default=_EMPTY)


def _checked(fields: dict[str, object]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
    return {name: str(value) for name, value in fields.items() if value is not None}


class LogContext:
    """
    Call-scoped fields attached to every log line.

    Backed by a single ContextVar holding a read-only mapping, so each
    thread and each asyncio task sees its own context.  None values are
    ignored; everything else is stored as ``str``.
    """

    @staticmethod
    def set(**fields: object) -> None:
        """Merge ``fields`` into the current context."""
        _context.set(MappingProxyType({**_context.get(), **_checked(fields)}))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: object) -> Iterator[None]:
        """Overlay ``fields`` for the duration of the block, then restore."""
        token = _context.set(MappingProxyType({**_context.get(), **_checked(fields)}))
        try:
            yield
        finally:
            _context.reset(token)


# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return repr(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message, code and public attributes of ``exc``."""
    fields: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        fields["code"] = code
    fields.update((k, v) for k, v in vars(exc).items() if not k.startswith("_"))
    return fields


class StructuredFormatter(logging.Formatter):
    """
    Renders a record as one JSON line.

    Keys: ``ts`` (UTC ISO-8601), ``level``, ``logger``, ``message``, the
    bound LogContext fields, the record's ``extra`` fields, and when
    exc_info is set an ``error`` object plus ``traceback``.  Context
    fields win over extras of the same name.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = _error_fields(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger ``budget_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_state_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """
    Attach one JSON handler to the ``budget_kernel`` logger.

    Only the first call has an effect; later calls return the configured
    logger unchanged.  Records do not propagate to the root logger.
    """
    global _handler
    root = logging.getLogger(ROOT_LOGGER)
    with _state_lock:
        if _handler is None:
            _handler = handler or logging.StreamHandler(stream or sys.stderr)
            _handler.setFormatter(StructuredFormatter())
            root.addHandler(_handler)
            root.setLevel(level)
            root.propagate = False
    return root


def reset_logging() -> None:
    """Detach all handlers and fall back to WARNING.  Tests only."""
    global _handler
    root = logging.getLogger(ROOT_LOGGER)
    with _state_lock:
        _handler = None
        root.handlers.clear()
        root.setLevel(logging.WARNING)
