"""
Structured JSON logging for the inspection kernel.

Every record leaves as one JSON object per line:

    {"ts": ..., "level": ..., "logger": ..., "message": "inspection_decided",
     "inspection_id": ..., "actor_id": ..., <extra fields>}

Request-scoped identifiers (correlation, actor, inspection, request) travel
in ``LogContext`` and are merged into every record emitted while bound.
Exceptions attached with ``exc_info`` contribute their ``code`` and public
attributes as ``exc_*`` keys, so a refused decision can be searched by
error code and inspection id without parsing the message.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "inspection_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_context: ContextVar[dict[str, str]] = ContextVar("inspection_log_context", default={})


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    The active fields live in a single ContextVar holding a dict that is
    replaced, never mutated, so a bound block cannot leak into a sibling
    task.
    """

    FIELDS = ("correlation_id", "actor_id", "inspection_id", "request_id")

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        inspection_id: str | None = None,
        request_id: str | None = None,
    ) -> None:
        """Set fields for the rest of the current context; None leaves a field as is."""
        cls._merge(
            correlation_id=correlation_id,
            actor_id=actor_id,
            inspection_id=inspection_id,
            request_id=request_id,
        )

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    def bind(cls, **fields: Any):
        """
        Context manager binding ``fields`` for the duration of a block.

        Raises:
            TypeError: a field name is not one of ``FIELDS``.
        """
        unknown = sorted(set(fields) - set(cls.FIELDS))
        if unknown:
            raise TypeError(f"Unknown log context fields: {unknown}")
        return cls._bound(fields)

    @classmethod
    @contextmanager
    def _bound(cls, fields: dict[str, Any]) -> Iterator[type["LogContext"]]:
        token = cls._merge(**fields)
        try:
            yield cls
        finally:
            _context.reset(token)

    @staticmethod
    def _merge(**fields: Any):
        updated = dict(_context.get())
        updated.update({k: str(v) for k, v in fields.items() if v is not None})
        return _context.set(updated)


# ---------------------------------------------------------------------------
# JSON formatting
# ---------------------------------------------------------------------------

_RESERVED_RECORD_KEYS: frozenset[str] = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """``exc_*`` keys for an exception, including kernel error attributes."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, bound context, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_KEYS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``inspection_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_state_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``inspection_kernel`` logger.

    Only the first call has any effect until ``reset_logging()``.  The
    kernel logger does not propagate, so host applications keep their own
    root configuration untouched.
    """
    global _installed_handler
    with _state_lock:
        if _installed_handler is not None:
            return
        _installed_handler = handler or logging.StreamHandler(stream or sys.stderr)

    _installed_handler.setFormatter(StructuredFormatter())
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False
    kernel_logger.addHandler(_installed_handler)


def reset_logging() -> None:
    """Detach the handler installed by ``configure_logging``. Tests only."""
    global _installed_handler
    with _state_lock:
        _installed_handler = None
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
