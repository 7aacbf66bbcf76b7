"""
Structured JSON logging for the settlement service.

Every record under the ``settlement`` logger namespace is written as one
JSON object per line.  The payload is assembled in three layers:

    1. envelope: ts, level, logger, message
    2. request context from ``LogContext`` (correlation_id, actor_id,
       batch_id, payment_id, trace_id)
    3. ``extra={...}`` fields passed by the caller

When a record carries an exception, its type, message, ``code`` and the
public attributes of a ``SettlementError`` are flattened into ``exc_*``
keys so a rejected batch or transition can be queried without parsing
the traceback.

Event names are snake_case (``batch_created``, ``bank_result_applied``).
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
from contextvars import ContextVar
from datetime import UTC, date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, TextIO
from uuid import UUID

_NAMESPACE = "settlement"

_CONTEXT_FIELDS = ("correlation_id", "actor_id", "batch_id", "payment_id", "trace_id")

_context: ContextVar[dict[str, str]] = ContextVar("settlement_log_context", default={})


class LogContext:
    """Request-scoped fields stamped onto every settlement log record.

    Values live in a single ContextVar, so each thread and each asyncio
    task sees its own copy.  UUIDs are accepted and stored as strings.
    """

    @staticmethod
    def _merged(fields: dict[str, Any]) -> dict[str, str]:
        unknown = set(fields) - set(_CONTEXT_FIELDS)
        if unknown:
            raise KeyError(", ".join(sorted(unknown)))
        merged = dict(_context.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | UUID | None = None,
        actor_id: str | UUID | None = None,
        batch_id: str | UUID | None = None,
        payment_id: str | UUID | None = None,
        trace_id: str | None = None,
    ) -> None:
        """Update the given fields; ``None`` leaves a field untouched."""
        _context.set(cls._merged({
            "correlation_id": correlation_id,
            "actor_id": actor_id,
            "batch_id": batch_id,
            "payment_id": payment_id,
            "trace_id": trace_id,
        }))

    @classmethod
    def get(cls, name: str) -> str | None:
        if name not in _CONTEXT_FIELDS:
            raise KeyError(name)
        return _context.get().get(name)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    def bind(cls, **fields: str | UUID | None) -> "_BoundContext":
        """Set fields for the duration of a ``with`` block.

        On exit the context is restored exactly as it was, including
        fields the block did not touch::

            with LogContext.bind(batch_id=str(batch.id)):
                logger.info("file_generated")
        """
        return _BoundContext(cls._merged(fields))


class _BoundContext:

    def __init__(self, values: dict[str, str]):
        self._values = values
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(self._values)
        return LogContext

    def __exit__(self, *exc_info: Any) -> None:
        _context.reset(self._token)


# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
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
        if name.startswith("_") or name == "code":
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger ``settlement.<name>``; configuration is inherited from the root."""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``settlement`` logger.

    Only the first call has any effect.  Records do not propagate to the
    Python root logger, so host applications keep their own formatting.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(_NAMESPACE)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging`` again. Tests only."""
    global _configured
    with _configure_lock:
        _configured = False
    root = logging.getLogger(_NAMESPACE)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
