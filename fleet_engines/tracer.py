"""
fleet_engines.tracer -- Engine invocation tracer emitting FLEET_ENGINE_TRACE.

Wraps pure engine functions with structured trace logging: engine name,
version, a deterministic fingerprint of selected keyword inputs and the
call duration.  The decorator only reads kwargs and emits a log record;
it never changes what the engine returns or raises.

Usage:
    from fleet_engines.tracer import traced_engine

    @traced_engine("trip_ledger.close", "1.0", fingerprint_fields=("trip.id", "trip.actual_qty"))
    def validate_close(*, trip, totals):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable
from typing import Any

from fleet_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, dict):
        items = sorted(value.items())
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def _resolve(field: str, kwargs: dict[str, Any]) -> Any:
    """Value of ``field`` in kwargs; ``trip.actual_qty`` reads an attribute."""
    name, *path = field.split(".")
    value = kwargs.get(name)
    for attr in path:
        value = getattr(value, attr, None)
    return value


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """SHA-256 prefix (16 hex chars) over the named keyword inputs.

    Fields may be dotted attribute paths.  Missing fields are recorded
    as "null".
    """
    parts = [f"{field}={_canonicalize(_resolve(field, kwargs))}" for field in fingerprint_fields]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits FLEET_ENGINE_TRACE for pure engine invocations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                fp = compute_input_fingerprint(fingerprint_fields, kwargs)

            t0 = time.monotonic()
            outcome = "ok"
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                outcome = getattr(exc, "code", type(exc).__name__)
                raise
            finally:
                _logger.debug(
                    "FLEET_ENGINE_TRACE",
                    extra={
                        "trace_type": "FLEET_ENGINE_TRACE",
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fp,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        "function": func.__qualname__,
                        "outcome": outcome,
                    },
                )

        return wrapper

    return decorator
