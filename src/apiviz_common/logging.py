"""Structured logging helpers with correlation IDs.

This module provides :class:`LoggerAdapter` for structured logging with the
``correlation_id``, ``operation`` and ``status`` fields, and module-level
loggers with ``NullHandler`` so library code never configures handlers on its
own. The CLI boundary calls :func:`setup_logging` once.

Examples
--------
>>> from apiviz_common.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Render started", extra={"operation": "render", "status": "started"})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from collections.abc import Mapping, MutableMapping
    from types import TracebackType
    from typing import TextIO

__all__ = [
    "CorrelationContext",
    "JsonFormatter",
    "LoggerAdapter",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
]

# Context variable for correlation ID propagation
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

_STANDARD_RECORD_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Formats log records as one JSON object per line with timestamp, level,
    logger name, message and every JSON-friendly extra field attached to the
    record. ``correlation_id`` falls back to the active context value.

    Examples
    --------
    >>> import logging
    >>> handler = logging.StreamHandler()
    >>> handler.setFormatter(JsonFormatter())
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format ``record`` as a JSON string.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format.

        Returns
        -------
        str
            JSON-encoded log entry.
        """
        data: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        if getattr(record, "correlation_id", None) is None:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                data["correlation_id"] = ctx_correlation_id

        for key, value in record.__dict__.items():
            if (
                key not in _STANDARD_RECORD_ATTRS
                and key not in data
                and not key.startswith("_")
                and value is not None
                and isinstance(value, (str, int, float, bool, list, dict))
            ):
                data[key] = value

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


class LoggerAdapter(logging.LoggerAdapter[logging.Logger]):
    """Logger adapter that injects structured context fields.

    Fields bound at construction time are merged into every call's ``extra``
    without overriding explicitly passed values. ``operation`` and ``status``
    are always present; ``status`` defaults from the log level.

    Parameters
    ----------
    logger : logging.Logger
        Base logger instance to wrap.
    extra : Mapping[str, object] | None, optional
        Structured fields to inject into log entries.
    """

    def __init__(self, logger: logging.Logger, extra: Mapping[str, object] | None = None) -> None:
        super().__init__(logger, dict(extra or {}))

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        """Merge bound fields and the correlation id into ``kwargs['extra']``.

        Parameters
        ----------
        msg : Any
            Log message.
        kwargs : MutableMapping[str, Any]
            Keyword arguments from the logging call.

        Returns
        -------
        tuple[Any, MutableMapping[str, Any]]
            Message and updated keyword arguments.
        """
        extra = kwargs.get("extra")
        extra = dict(extra) if isinstance(extra, dict) else {}
        for key, value in (self.extra or {}).items():
            extra.setdefault(key, value)

        if "correlation_id" not in extra:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                extra["correlation_id"] = ctx_correlation_id

        extra.setdefault("operation", "unknown")
        kwargs["extra"] = extra
        return msg, kwargs

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:
        """Log ``msg`` at ``level`` with a level-derived ``status`` default."""
        if not self.isEnabledFor(level):
            return
        msg, kwargs = self.process(msg, kwargs)
        extra = kwargs["extra"]
        if "status" not in extra:
            if level >= logging.ERROR:
                extra["status"] = "error"
            elif level >= logging.WARNING:
                extra["status"] = "warning"
            else:
                extra["status"] = "success"
        self.logger.log(level, msg, *args, **kwargs)


def get_logger(name: str) -> LoggerAdapter:
    """Get a logger adapter with structured logging support.

    Parameters
    ----------
    name : str
        Logger name (typically ``__name__``).

    Returns
    -------
    LoggerAdapter
        Adapter with structured context injection.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return LoggerAdapter(logger, {})


def setup_logging(level: int = logging.INFO, *, stream: TextIO | None = None) -> None:
    """Configure the root logger with :class:`JsonFormatter`.

    Parameters
    ----------
    level : int, optional
        Logging level threshold. Defaults to ``logging.INFO``.
    stream : TextIO | None, optional
        Destination stream. Defaults to the current ``sys.stderr`` so stdout
        stays reserved for command output.
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Return the current correlation ID, or ``None`` when unset."""
    return _correlation_id.get()


class CorrelationContext:
    """Context manager that scopes a correlation ID.

    The previous value is restored when the context exits.

    Examples
    --------
    >>> from apiviz_common.logging import CorrelationContext, get_logger
    >>> logger = get_logger(__name__)
    >>> with CorrelationContext(correlation_id="run-123"):
    ...     logger.info("Run started")
    """

    def __init__(self, correlation_id: str | None) -> None:
        self.correlation_id = correlation_id
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> Self:
        self._token = _correlation_id.set(self.correlation_id)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _correlation_id.reset(self._token)
        del exc_type, exc_val, exc_tb
