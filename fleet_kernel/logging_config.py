"""
Structured JSON logging for the fleet ledger.

Every record is written as one JSON object.  The envelope carries the
fields an operator filters on when reading a trip's history:

    ts, level, logger, message
    trip_id, truck_id, actor_id     bound with LogContext or passed in extra
    action, reason                  what was attempted and why it was refused

Remaining ``extra`` keys follow the envelope.  When a record carries an
exception, its type, message, FleetLedgerError ``code`` and structured
attributes are added as ``exc_*`` fields; an exception's own ``trip_id``,
``action`` or ``reason`` fills the envelope when the call site did not.

``extra`` keys must not collide with LogRecord attributes (``filename``,
``module``, ``name``, ``lineno`` ...): the stdlib raises KeyError for them.
"""

__all__ = [
    "ENVELOPE_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

LOGGER_ROOT = "fleet_kernel"

CONTEXT_FIELDS = ("trip_id", "truck_id", "actor_id")
ENVELOPE_FIELDS = CONTEXT_FIELDS + ("action", "reason")

# Replaced, never mutated in place.
_context: ContextVar[dict[str, str]] = ContextVar("fleet_log_context", default={})


def _context_values(fields: dict[str, Any]) -> dict[str, str]:
    unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(unknown)}")
    return {key: str(value) for key, value in fields.items() if value is not None}


class LogContext:
    """Trip, truck and actor identifiers stamped on every record in scope."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Set fields for the rest of the current context. None values are ignored."""
        _context.set({**_context.get(), **_context_values(fields)})

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """
        Set fields for the duration of a ``with`` block.

        The previous values are restored on exit, including when the block
        raises.
        """
        token = _context.set({**_context.get(), **_context_values(fields)})
        try:
            yield LogContext
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # UUID, Decimal, paths
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for key, value in vars(exc).items():
        if not key.startswith("_") and key != "code":
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON line per record: timestamp, level, logger, message, envelope, extras."""

    def format(self, record: logging.LogRecord) -> str:
        extras = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        exc = record.exc_info[1] if record.exc_info else None
        context = LogContext.get_all()

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in ENVELOPE_FIELDS:
            value = extras.pop(name, None)
            if value is None:
                value = context.get(name)
            if value is None and exc is not None:
                value = getattr(exc, name, None)
            if value is not None:
                payload[name] = value

        payload.update(extras)

        if exc is not None:
            payload.update(_exception_fields(exc))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the fleet_kernel namespace, e.g. ``services.trip``."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


_installed: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install the JSON handler on the fleet_kernel logger.

    The first call wins: later calls (the engine initializer calls this
    with defaults) leave the installed handler and level alone and return
    the installed handler.
    """
    global _installed
    with _lock:
        if _installed is None:
            installed = handler or logging.StreamHandler(stream or sys.stderr)
            installed.setFormatter(StructuredFormatter())
            root = logging.getLogger(LOGGER_ROOT)
            root.setLevel(level)
            root.propagate = False
            root.addHandler(installed)
            _installed = installed
        return _installed


def reset_logging() -> None:
    """Remove the installed handler so configure_logging() applies again. Tests only."""
    global _installed
    with _lock:
        root = logging.getLogger(LOGGER_ROOT)
        if _installed is not None:
            root.removeHandler(_installed)
        _installed = None
        root.setLevel(logging.NOTSET)
        root.propagate = True
