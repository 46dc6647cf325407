"""Structured logging helpers for the ``apiviz`` package.

This module delegates to :mod:`apiviz_common.logging` so every module in the
``apiviz`` namespace emits structured, correlation-aware logs without
duplicating setup code. Handlers are configured at the CLI boundary only.

Examples
--------
>>> from apiviz._shared.logging import get_logger, with_fields
>>> logger = get_logger(__name__)
>>> adapter = with_fields(logger, document="a/b.yaml", operation="generate")
>>> adapter.info("Generating diagram")
"""

from __future__ import annotations

import logging
from typing import Any

from apiviz_common.logging import LoggerAdapter
from apiviz_common.logging import get_logger as _get_logger_base

__all__ = [
    "LogValue",
    "LoggerAdapter",
    "StructuredLoggerAdapter",
    "get_logger",
    "with_fields",
]

type LogValue = Any


def get_logger(name: str) -> LoggerAdapter:
    """Return a logger adapter with structured logging support.

    Parameters
    ----------
    name : str
        Logger name (typically ``__name__``).

    Returns
    -------
    LoggerAdapter
        Logger adapter with structured context injection.
    """
    return _get_logger_base(name)


def with_fields(logger: logging.Logger | LoggerAdapter, **fields: LogValue) -> LoggerAdapter:
    """Return a structured adapter bound to ``fields``.

    Fields already bound on ``logger`` are dropped; only ``fields`` are carried
    by the returned adapter.

    Parameters
    ----------
    logger : logging.Logger | LoggerAdapter
        Base logger to wrap (may already be an adapter).
    **fields : LogValue
        Structured fields to inject into all log entries.

    Returns
    -------
    LoggerAdapter
        Logger adapter with bound fields.
    """
    base_logger = logger.logger if isinstance(logger, LoggerAdapter) else logger
    return LoggerAdapter(base_logger, fields)


StructuredLoggerAdapter = LoggerAdapter
