"""Shared infrastructure for apiviz: logging, settings, process execution and reporting."""

from __future__ import annotations

from apiviz._shared.logging import get_logger, with_fields
from apiviz._shared.proc import ToolExecutionError, ToolRunResult, run_tool
from apiviz._shared.settings import SettingsError, get_runtime_settings, load_settings

__all__ = [
    "SettingsError",
    "ToolExecutionError",
    "ToolRunResult",
    "get_logger",
    "get_runtime_settings",
    "load_settings",
    "run_tool",
    "with_fields",
]
