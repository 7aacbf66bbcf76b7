"""
Trace records for pure engine calls.

``@traced_engine`` wraps an engine entry point (IBAN validation,
eligibility evaluation) and emits one DEBUG record per call::

    SETTLEMENT_ENGINE_TRACE  engine_name=iban engine_version=1.0
                             input_fingerprint=3f9c... duration_ms=0.04

The fingerprint lets two calls with the same inputs be matched across
log lines without the inputs themselves (IBANs, national ids) ever
being written out.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from settlement_kernel.logging_config import get_logger

F = TypeVar("F", bound=Callable[..., Any])

TRACE_EVENT = "SETTLEMENT_ENGINE_TRACE"

_logger = get_logger("engines.tracer")


def _stable_repr(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        inner = ",".join(f"{key}:{_stable_repr(value[key])}" for key in sorted(value))
        return "{" + inner + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_stable_repr(item) for item in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """First 16 hex chars of SHA-256 over ``field=value`` pairs.

    A field absent from ``arguments`` hashes the same as ``None``.
    """
    canonical = "|".join(
        f"{field}={_stable_repr(arguments.get(field))}" for field in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    """Log ``SETTLEMENT_ENGINE_TRACE`` after each call of the wrapped function.

    ``fingerprint_fields`` names parameters of the wrapped function; they
    are resolved from positional and keyword arguments alike.
    """

    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000

            _logger.debug(
                TRACE_EVENT,
                extra={
                    "trace_type": TRACE_EVENT,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round(elapsed_ms, 3),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
