"""
Structured JSON logging for the shipment kernel.

Every record under the ``shipment_kernel`` logger tree is written as one
JSON object per line:

    {"ts": ..., "level": ..., "logger": ..., "message": ...,
     <bound context: correlation_id, shipment_id, actor_id, task_id, trace_id>,
     <extra= fields>,
     <exc_* fields and traceback when exc_info is set>}

Request-scoped fields live in LogContext, a single ContextVar holding the
bound mapping, so a transition logged from any service carries the
shipment and actor it belongs to without threading them through calls.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Mapping
from uuid import UUID

KERNEL_LOGGER = "shipment_kernel"
_HANDLER_NAME = "shipment_kernel.structured"


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks."""

    FIELDS: tuple[str, ...] = (
        "correlation_id",
        "shipment_id",
        "actor_id",
        "task_id",
        "trace_id",
    )

    _bound: ContextVar[Mapping[str, str]] = ContextVar("shipment_log_context", default={})

    @classmethod
    def _checked(cls, fields: Mapping[str, Any]) -> dict[str, str]:
        unknown = sorted(set(fields) - set(cls.FIELDS))
        if unknown:
            raise ValueError(f"Unknown log context fields: {unknown}")
        return {k: str(v) for k, v in fields.items() if v is not None}

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Bind fields for the rest of the current context.  None is skipped."""
        merged = {**cls._bound.get(), **cls._checked(fields)}
        cls._bound.set(merged)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._bound.get())

    @classmethod
    def clear(cls) -> None:
        cls._bound.set({})

    @classmethod
    def bind(cls, **fields: Any):
        """
        Bind fields for the duration of a ``with`` block.

        Unknown field names raise ValueError here, before the block runs.
        """
        return cls._scoped(cls._checked(fields))

    @classmethod
    @contextmanager
    def _scoped(cls, fields: dict[str, str]) -> Iterator[type["LogContext"]]:
        token = cls._bound.set({**cls._bound.get(), **fields})
        try:
            yield cls
        finally:
            cls._bound.reset(token)


# Attributes every LogRecord carries; anything else came in through extra=.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_safe(value: Any) -> Any:
    """json.dumps fallback for kernel value types."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    # Kernel errors carry a machine code plus structured attributes
    # (shipment_id, from_status, missing_fields, ...).
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
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(LogContext.get_all())
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in entry
        )

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_json_safe)


def get_logger(name: str) -> logging.Logger:
    """Logger ``shipment_kernel.<name>``."""
    return logging.getLogger(f"{KERNEL_LOGGER}.{name}")


def _kernel_handler(logger: logging.Logger) -> logging.Handler | None:
    for handler in logger.handlers:
        if handler.get_name() == _HANDLER_NAME:
            return handler
    return None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach the structured handler to the kernel logger tree.

    Idempotent: once a structured handler is attached, later calls
    (including the one made by init_engine_from_url) change nothing.
    """
    root = logging.getLogger(KERNEL_LOGGER)
    if _kernel_handler(root) is not None:
        return

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(StructuredFormatter())

    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Detach every handler from the kernel logger tree.  Tests only."""
    root = logging.getLogger(KERNEL_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
