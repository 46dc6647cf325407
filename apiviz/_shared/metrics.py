"""Prometheus metrics and OpenTelemetry spans around external tool runs."""

from __future__ import annotations

import time
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Final

from apiviz._shared.logging import get_logger, with_fields
from apiviz._shared.prometheus import build_counter, build_histogram
from apiviz._shared.settings import get_runtime_settings
from apiviz_common.observability import start_span

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from apiviz._shared.prometheus import CounterLike, HistogramLike

LOGGER = get_logger(__name__)

TOOL_RUNS_TOTAL: CounterLike = build_counter(
    "apiviz_tool_runs_total",
    "External tool invocations by outcome",
    labelnames=["tool", "status"],
)
TOOL_FAILURES_TOTAL: CounterLike = build_counter(
    "apiviz_tool_failures_total",
    "External tool failures by reason",
    labelnames=["tool", "reason"],
)
TOOL_DURATION_SECONDS: HistogramLike = build_histogram(
    "apiviz_tool_duration_seconds",
    "External tool wall-clock duration",
    labelnames=["tool", "status"],
)


@dataclass(slots=True)
class ToolRun:
    """Outcome of one subprocess, filled in by the runner."""

    tool: str
    reason: str | None = None
    returncode: int | None = None
    timed_out: bool = False
    started: float = field(default_factory=time.monotonic)

    @property
    def status(self) -> str:
        return "success" if self.reason is None else "error"

    def success(self, returncode: int) -> None:
        self.reason = None
        self.returncode = returncode

    def failure(
        self, reason: str, *, returncode: int | None = None, timed_out: bool = False
    ) -> None:
        self.reason = reason
        self.returncode = returncode
        self.timed_out = timed_out

    def duration_seconds(self) -> float:
        return time.monotonic() - self.started


@contextmanager
def observe_tool_run(
    command: Sequence[str], *, cwd: Path | None, timeout: float | None
) -> Iterator[ToolRun]:
    """Yield a :class:`ToolRun` and record it when the block exits.

    An exception escaping the block counts as a failure with reason
    ``exception`` unless the caller already marked one; it is re-raised.
    """
    settings = get_runtime_settings()
    run = ToolRun(tool=Path(command[0]).name)
    logger = with_fields(
        LOGGER,
        operation="tool_run",
        tool=run.tool,
        command=list(command),
        cwd=str(cwd) if cwd else None,
        timeout_seconds=timeout,
    )
    span = (
        start_span(
            f"apiviz.run.{run.tool}",
            attributes={"tool": run.tool, "timeout_s": -1.0 if timeout is None else timeout},
        )
        if settings.tracing_enabled
        else nullcontext()
    )
    with span:
        try:
            yield run
        except Exception:
            if run.reason is None:
                run.failure("exception")
            raise
        finally:
            elapsed = run.duration_seconds()
            if settings.metrics_enabled:
                TOOL_RUNS_TOTAL.labels(tool=run.tool, status=run.status).inc()
                TOOL_DURATION_SECONDS.labels(tool=run.tool, status=run.status).observe(elapsed)
                if run.reason is not None:
                    TOOL_FAILURES_TOTAL.labels(tool=run.tool, reason=run.reason).inc()
            fields = {
                "duration_ms": elapsed * 1000,
                "status": run.status,
                "returncode": run.returncode,
                "timed_out": run.timed_out,
            }
            if run.reason is None:
                logger.info("Tool run succeeded", extra=fields)
            else:
                logger.error("Tool run failed", extra={**fields, "reason": run.reason})


__all__: Final[list[str]] = [
    "TOOL_DURATION_SECONDS",
    "TOOL_FAILURES_TOTAL",
    "TOOL_RUNS_TOTAL",
    "ToolRun",
    "observe_tool_run",
]
