"""Helpers for emitting :class:`LogConstant` records with structured context."""

from __future__ import annotations

from enum import Enum
from pathlib import PurePath
from typing import Any, Mapping
import logging

from .log_constants import LogConstant

# LogRecord attributes that ``extra`` must never overwrite
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName", "levelname",
        "levelno", "lineno", "module", "msecs", "pathname", "process",
        "processName", "relativeCreated", "stack_info", "exc_info", "exc_text",
        "thread", "threadName", "taskName", "message", "asctime",
    }
)


def _record_value(value: Any) -> Any:
    """Flatten paths and enums so records stay JSON-friendly for handlers."""

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, PurePath):
        return str(value)
    return value


def log_constant(
    logger: logging.Logger,
    constant: LogConstant,
    *,
    message: str | None = None,
    extra: Mapping[str, Any] | None = None,
    exc_info: BaseException | tuple | None = None,
) -> None:
    """Emit ``constant`` on ``logger``.

    Parameters
    ----------
    logger:
        Target logger instance.
    constant:
        Log constant supplying level, code, component and tags.
    message:
        Optional detail appended after the constant's base message.
    extra:
        Additional structured fields merged into the record. ``Path`` and
        ``Enum`` values are flattened to strings.
    exc_info:
        Exception info to attach for stack traces.
    """

    payload: dict[str, Any] = {
        "log_code": constant.code,
        "component": constant.component,
        "subcomponent": constant.subcomponent,
        "tags": ",".join(constant.tags),
    }
    if extra:
        payload.update(
            {k: _record_value(v) for k, v in extra.items() if k not in _RESERVED_RECORD_KEYS}
        )

    text = constant.message if message is None else f"{constant.message} | {message}"
    level = getattr(logging, constant.level) if isinstance(constant.level, str) else constant.level
    logger.log(level, "%s %s", constant.code, text, extra=payload, exc_info=exc_info)


class LogConstantMixin:
    """Mixin providing ``self.log_constant`` bound to ``self._logger``.

    Subclasses may override :meth:`log_context` to stamp every record with
    identifying fields (``session_id``, ``model_name``...). Keys passed in
    ``extra`` win over the context.
    """

    _logger: logging.Logger

    def log_context(self) -> Mapping[str, Any]:
        return {}

    def log_constant(
        self,
        constant: LogConstant,
        *,
        message: str | None = None,
        extra: Mapping[str, Any] | None = None,
        exc_info: BaseException | tuple | None = None,
    ) -> None:
        context = self.log_context()
        merged = {**context, **extra} if (context and extra) else (extra or context)
        log_constant(self._logger, constant, message=message, extra=merged, exc_info=exc_info)


__all__ = ["log_constant", "LogConstantMixin"]
