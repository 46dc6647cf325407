"""Shared logging and tracing primitives for the apiviz tooling."""

from __future__ import annotations

from apiviz_common.logging import (
    CorrelationContext,
    JsonFormatter,
    LoggerAdapter,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)
from apiviz_common.observability import start_span

__all__ = [
    "CorrelationContext",
    "JsonFormatter",
    "LoggerAdapter",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    "start_span",
]
