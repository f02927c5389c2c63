"""
Structured logging for the sales ledger.

Every ledger event is a snake_case message name plus structured ``extra``
fields, emitted under the ``ledger_kernel`` logger namespace.  Request-scoped
fields (which sale, which currency, which transaction number) travel in
``LogContext`` context variables, so they reach every record written while
a posting or a rate resolution is in progress, in any thread or task.

Output is one JSON object per line by default; ``json_output=False`` gives a
plain text line with the same context fields appended as ``key=value``.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "ContextTextFormatter",
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
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "reference_id",
    "transaction_number",
    "currency",
)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"ledger_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
    if unknown:
        raise TypeError(
            f"Unknown log context field(s) {unknown}; expected {list(CONTEXT_FIELDS)}"
        )


class LogContext:
    """Thread-safe / async-safe holder for request-scoped log fields.

    Fields are limited to ``CONTEXT_FIELDS``.  None values never overwrite.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        _check_fields(fields)
        for name, value in fields.items():
            if value is not None:
                _CONTEXT_VARS[name].set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        """Non-None context fields, in ``CONTEXT_FIELDS`` order."""
        values = {name: var.get() for name, var in _CONTEXT_VARS.items()}
        return {name: value for name, value in values.items() if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @staticmethod
    def bind(**fields: str | None) -> "_BoundContext":
        """Set fields for the duration of a ``with`` block, then restore."""
        _check_fields(fields)
        return _BoundContext(fields)


class _BoundContext:
    def __init__(self, fields: dict[str, str | None]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar, Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            if value is not None:
                var = _CONTEXT_VARS[name]
                self._tokens.append((var, var.set(value)))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "exc_text", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def _extra_fields(record: logging.LogRecord, taken: dict[str, Any]) -> dict[str, Any]:
    """``extra`` values on the record; context fields win on collision."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STDLIB_KEYS and key not in taken
    }


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if hasattr(exc, "code"):
        fields["exc_code"] = exc.code
    # Structured attributes of LedgerKernelError subclasses
    for key, value in vars(exc).items():
        if not key.startswith("_") and key not in ("args", "code"):
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extra, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(_extra_fields(record, payload))

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


class ContextTextFormatter(logging.Formatter):
    """Human-readable line with context and extra fields as ``key=value``."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = LogContext.get_all()
        fields.update(_extra_fields(record, fields))
        if not fields:
            return line
        pairs = " ".join(f"{k}={_json_default(v)}" for k, v in fields.items())
        head, sep, tail = line.partition("\n")
        return f"{head} {pairs}{sep}{tail}"


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "ledger_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ledger_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
    json_output: bool = True,
) -> bool:
    """
    Attach one handler to the ledger_kernel logger (idempotent).

    Args:
        level: Numeric level or name (``"DEBUG"``, ``"INFO"``, ...).

    Returns:
        True if this call configured logging, False if it already was.
    """
    global _configured
    with _lock:
        if _configured:
            return False
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level.upper() if isinstance(level, str) else level)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter() if json_output else ContextTextFormatter())
    root_logger.addHandler(h)
    return True


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
