"""Module-level facade over :class:`~apiviz._shared.process.ProcessRunner`.

Pipeline code calls :func:`run_tool`; tests swap the shared runner with
:func:`set_process_runner` to intercept subprocess execution.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from apiviz._shared.process import ProcessRunner, ToolExecutionError, ToolRunResult

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path


@dataclass(slots=True, frozen=True)
class _ProcessRunnerState:
    runner: ProcessRunner


_PROCESS_STATE: list[_ProcessRunnerState] = [_ProcessRunnerState(ProcessRunner())]


def get_process_runner() -> ProcessRunner:
    """Return the global process runner instance used by :func:`run_tool`."""
    return _PROCESS_STATE[0].runner


def set_process_runner(runner: ProcessRunner) -> None:
    """Replace the global process runner used by :func:`run_tool`.

    Callers should restore the previous runner when finished.
    """
    _PROCESS_STATE[0] = replace(_PROCESS_STATE[0], runner=runner)


def run_tool(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    check: bool = False,
    capture_output: bool = True,
) -> ToolRunResult:
    """Execute ``command`` using the shared :class:`ProcessRunner` policies.

    Parameters
    ----------
    command : Sequence[str]
        Command to execute.
    cwd : Path | None, optional
        Working directory. Default is None.
    env : Mapping[str, str] | None, optional
        Environment overrides. Default is None.
    timeout : float | None, optional
        Timeout in seconds. Default is None.
    check : bool, optional
        Raise on non-zero exit. Default is False.
    capture_output : bool, optional
        Capture stdout/stderr instead of inheriting them. Default is True.

    Returns
    -------
    ToolRunResult
        Execution result.
    """
    return _PROCESS_STATE[0].runner.run(
        command,
        cwd=cwd,
        env=env,
        timeout=timeout,
        check=check,
        capture_output=capture_output,
    )


__all__ = [
    "ProcessRunner",
    "ToolExecutionError",
    "ToolRunResult",
    "get_process_runner",
    "run_tool",
    "set_process_runner",
]
