"""
Structured JSON logging for the operator kernel.

Each record is written as one JSON line.  Fields describing the current
mutation (acting user and role, the operator cost, the transition, the month
being locked) are bound once through ``LogContext`` and repeated on every
line logged inside that scope.

Kernel values may be passed in ``extra`` as they are.  ``to_log_value``
renders enums by value and UUIDs as strings.  Dataclass values such as
``Actor``, ``FieldChange`` or ``TransitionFailure`` become nested objects.

Usage::

    logger = get_logger("services.operator_mutation")
    with LogContext.bind(actor=actor, operator_id=operator_id, transition=Transition.LOCK):
        logger.warning("transition_rejected", extra={"failure": failure})
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "to_log_value",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import dataclasses
import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Iterator, Mapping
from uuid import UUID

_LOGGER_PREFIX = "operator_kernel"


def to_log_value(value: Any) -> Any:
    """JSON-safe rendering of a value logged by the kernel."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            field.name: to_log_value(getattr(value, field.name))
            for field in dataclasses.fields(value)
        }
    if isinstance(value, Mapping):
        return {str(key): to_log_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_log_value(item) for item in value]
    return str(value)


# ---------------------------------------------------------------------------
# Mutation context
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = frozenset({"actor_id", "actor_role", "operator_id", "transition", "month"})

_context: ContextVar[Mapping[str, str]] = ContextVar("operator_log_context", default={})


def _context_fields(fields: dict[str, Any]) -> dict[str, str]:
    """
    Validate and flatten fields passed to ``LogContext``.

    ``actor`` expands to ``actor_id`` and ``actor_role``.  ``None`` values
    are skipped.  Unknown names raise TypeError.
    """
    flat: dict[str, str] = {}
    actor = fields.pop("actor", None)
    if actor is not None:
        flat["actor_id"] = str(actor.id)
        flat["actor_role"] = to_log_value(actor.role)
    for name, value in fields.items():
        if name not in _CONTEXT_FIELDS:
            raise TypeError(f"Unknown log context field: {name}")
        if value is not None:
            flat[name] = str(to_log_value(value))
    return flat


class LogContext:
    """Async-safe holder of the fields describing the current mutation."""

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Merge ``fields`` into the current context."""
        _context.set({**_context.get(), **_context_fields(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Merge ``fields`` for the duration of the block; the outer context returns on exit."""
        token = _context.set({**_context.get(), **_context_fields(fields)})
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, mutation context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = to_log_value(val)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        # OperatorKernelError subclasses carry a code and their identifying attributes
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for name, val in vars(exc).items():
            if not name.startswith("_") and name not in ("args", "code"):
                fields[f"exc_{name}"] = to_log_value(val)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the operator_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_installed_handler: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the operator_kernel logger.

    Only the first call in a process takes effect; ``bootstrap()`` and
    ``init_engine_from_url()`` both call it.
    """
    global _installed_handler
    with _lock:
        if _installed_handler is not None:
            return
        _installed_handler = handler or logging.StreamHandler(stream or sys.stderr)

    _installed_handler.setFormatter(StructuredFormatter())
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False
    kernel_logger.addHandler(_installed_handler)


def reset_logging() -> None:
    """Undo configure_logging(). Tests only; handlers added by others stay."""
    global _installed_handler
    with _lock:
        handler, _installed_handler = _installed_handler, None
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    if handler is not None:
        kernel_logger.removeHandler(handler)
    kernel_logger.setLevel(logging.NOTSET)
    kernel_logger.propagate = True
