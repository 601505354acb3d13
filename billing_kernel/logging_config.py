"""
Structured logging -- one JSON object per line under ``billing_kernel.*``.

Every record carries the reconciliation context bound for the event being
processed (tenant, client, invoice, provider event) plus whatever the call
site passes in ``extra``.  Exceptions are flattened into ``exc_*`` keys so
``BillingKernelError`` codes and identifiers are queryable without parsing
the traceback.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, TextIO
from uuid import UUID

_ROOT = "billing_kernel"
_HANDLER_NAME = "billing_kernel.structured"


class LogContext:
    """Event-scoped log fields, isolated per thread and per task."""

    FIELDS: tuple[str, ...] = (
        "correlation_id",
        "tenant_id",
        "client_id",
        "external_invoice_id",
        "provider_event_id",
    )

    _fields: ContextVar[Mapping[str, str]] = ContextVar("billing_log_context", default={})

    @classmethod
    def _merged(cls, updates: Mapping[str, str | None]) -> dict[str, str]:
        unknown = set(updates) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(cls._fields.get())
        merged.update({k: v for k, v in updates.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Update fields for the rest of the current context; None leaves a field as is."""
        cls._fields.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._fields.get())

    @classmethod
    def clear(cls) -> None:
        cls._fields.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore."""
        token = cls._fields.set(cls._merged(fields))
        try:
            yield cls
        finally:
            cls._fields.reset(token)


# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line.

    Key precedence: the fixed header (ts, level, logger, message), then the
    bound ``LogContext``, then ``extra`` keys not already present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                entry.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` under the ``billing_kernel`` hierarchy."""
    return logging.getLogger(f"{_ROOT}.{name}")


_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach the JSON handler to ``billing_kernel``.

    Only the first call installs a handler; later calls are no-ops until
    ``reset_logging``.
    """
    root = logging.getLogger(_ROOT)
    with _lock:
        if any(h.name == _HANDLER_NAME for h in root.handlers):
            return
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.name = _HANDLER_NAME
        target.setFormatter(StructuredFormatter())
        root.addHandler(target)
        root.setLevel(level)
        root.propagate = False


def reset_logging() -> None:
    """Drop every handler on ``billing_kernel`` (tests use this between cases)."""
    root = logging.getLogger(_ROOT)
    with _lock:
        root.handlers.clear()
        root.setLevel(logging.WARNING)
