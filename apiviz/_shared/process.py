"""Subprocess execution with allowlist, digest and environment policies.

Every external tool apiviz starts (the Node diagram generator, the Mermaid
renderer, or their test stand-ins) goes through :class:`ProcessRunner`:

1. the executable is resolved to an absolute path and matched against
   ``TOOLS_EXEC_ALLOWLIST``;
2. when ``TOOLS_EXEC_DIGESTS`` names it, its SHA-256 must match;
3. the child gets a filtered copy of the environment;
4. the run is observed (metrics, span, log line) and every failure becomes a
   :class:`ToolExecutionError` carrying Problem Details.

Callers normally use :func:`apiviz._shared.proc.run_tool`.
"""

from __future__ import annotations

import hashlib
import hmac
import os
import shutil
import subprocess  # noqa: S404 - every call goes through ExecutablePolicy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Final

from apiviz._shared.logging import get_logger
from apiviz._shared.metrics import observe_tool_run
from apiviz._shared.problem_details import (
    tool_digest_mismatch_problem_details,
    tool_disallowed_problem_details,
    tool_failure_problem_details,
    tool_missing_problem_details,
    tool_timeout_problem_details,
)
from apiviz._shared.settings import get_runtime_settings

if TYPE_CHECKING:
    from apiviz._shared.problem_details import ProblemDetailsDict
    from apiviz._shared.settings import ToolRuntimeSettings

__all__ = [
    "ExecutablePolicy",
    "ProcessRunner",
    "ToolExecutionError",
    "ToolRunResult",
    "sanitised_environment",
]

LOGGER = get_logger(__name__)

# Variables passed to children; Node, npm and Puppeteer need their own.
ENV_KEYS: Final[frozenset[str]] = frozenset(
    {"HOME", "PATH", "LANG", "LC_ALL", "LC_CTYPE", "PYTHONPATH", "TMPDIR", "TZ", "USER"}
)
ENV_PREFIXES: Final[tuple[str, ...]] = ("NODE_", "NPM_", "npm_config_", "PUPPETEER_", "XDG_")


@dataclass(slots=True)
class ToolRunResult:
    """Outcome of one subprocess.

    ``stdout`` and ``stderr`` are empty when the streams were inherited.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    duration_seconds: float
    timed_out: bool


class ToolExecutionError(RuntimeError):
    """A subprocess could not be started, was rejected, timed out or failed.

    Parameters
    ----------
    message : str
        Human-readable error message.
    command : Sequence[str]
        Command as requested by the caller.
    returncode : int | None, optional
        Exit status when the process ran to completion.
    streams : tuple[str, str] | None, optional
        Captured ``(stdout, stderr)``.
    problem : ProblemDetailsDict | None, optional
        Problem Details payload describing the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str],
        returncode: int | None = None,
        streams: tuple[str, str] | None = None,
        problem: ProblemDetailsDict | None = None,
    ) -> None:
        super().__init__(message)
        self.command: tuple[str, ...] = tuple(command)
        self.returncode = returncode
        self.stdout, self.stderr = streams or ("", "")
        self.problem = problem

    @property
    def timed_out(self) -> bool:
        """``True`` when the process was killed at its timeout."""
        return self.problem is not None and str(self.problem["type"]).endswith("/tool-timeout")


@lru_cache(maxsize=128)
def _sha256_of(path: str) -> str:
    digest = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass(slots=True, frozen=True)
class ExecutablePolicy:
    """Resolve executables and enforce the allowlist and digest settings."""

    settings_loader: Callable[[], ToolRuntimeSettings] = get_runtime_settings

    def resolve(self, command: Sequence[str]) -> Path:
        """Return the absolute, permitted executable for ``command``.

        Raises
        ------
        ToolExecutionError
            If the executable cannot be found, is not allow-listed or fails
            its digest check.
        """
        name = command[0]
        located = name if Path(name).is_absolute() else shutil.which(name)
        if located is None:
            detail = f"Executable '{name}' could not be resolved to an absolute path"
            problem = tool_missing_problem_details(command, executable=name, detail=detail)
            raise ToolExecutionError(detail, command=command, problem=problem)

        executable = Path(located)
        settings = self.settings_loader()
        if not settings.is_allowed(executable):
            message = f"Executable '{executable}' is not permitted by TOOLS_EXEC_ALLOWLIST"
            LOGGER.warning(message, extra={"executable": executable.as_posix()})
            problem = tool_disallowed_problem_details(
                command, executable=executable, allowlist=settings.exec_allowlist
            )
            raise ToolExecutionError(message, command=command, problem=problem)

        expected = settings.expected_digest_for(executable)
        if expected is not None:
            self._verify_digest(executable, expected, command)
        return executable

    @staticmethod
    def _verify_digest(executable: Path, expected: str, command: Sequence[str]) -> None:
        try:
            actual: str | None = _sha256_of(executable.as_posix())
        except FileNotFoundError:
            actual = None
        if actual is not None and hmac.compare_digest(actual, expected):
            return
        reason = "digest-mismatch" if actual is not None else "executable-missing"
        message = f"Executable digest verification failed for {executable} ({reason})"
        LOGGER.error(message, extra={"executable": executable.as_posix(), "reason": reason})
        problem = tool_digest_mismatch_problem_details(
            command,
            executable=executable,
            expected_digest=expected,
            actual_digest=actual,
            reason=reason,
        )
        raise ToolExecutionError(message, command=command, problem=problem)


def sanitised_environment(overrides: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return the child environment: allowed parent variables plus ``overrides``."""
    env = {
        key: value
        for key, value in os.environ.items()
        if key in ENV_KEYS or key.startswith(ENV_PREFIXES) or key == "CI"
    }
    env.update({key: str(value) for key, value in (overrides or {}).items()})
    return env


def _text(stream: str | bytes | None) -> str:
    # TimeoutExpired carries bytes even for text-mode runs.
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream or ""


@dataclass(slots=True)
class ProcessRunner:
    """Run external tools under :class:`ExecutablePolicy`."""

    policy: ExecutablePolicy = field(default_factory=ExecutablePolicy)

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        check: bool = False,
        capture_output: bool = True,
    ) -> ToolRunResult:
        """Run ``command`` and return its result.

        With ``capture_output=False`` the child writes straight to this
        process's stdout and stderr.

        Raises
        ------
        ToolExecutionError
            If the command is empty, rejected, missing or times out, or when
            ``check`` is set and it exits non-zero.
        """
        if not command:
            message = "Command must contain at least one argument"
            raise ToolExecutionError(message, command=[])

        argv = (str(self.policy.resolve(command)), *command[1:])
        with observe_tool_run(argv, cwd=cwd, timeout=timeout) as observation:
            try:
                completed = subprocess.run(  # noqa: S603 - executable resolved and allow-listed
                    argv,
                    cwd=cwd,
                    env=sanitised_environment(env),
                    text=True,
                    capture_output=capture_output,
                    timeout=timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired as exc:
                observation.failure("timeout", timed_out=True)
                raise ToolExecutionError(
                    "Subprocess timed out",
                    command=command,
                    streams=(_text(exc.stdout), _text(exc.stderr)),
                    problem=tool_timeout_problem_details(command, timeout=timeout),
                ) from exc
            except FileNotFoundError as exc:
                observation.failure("missing_executable")
                problem = tool_missing_problem_details(
                    command, executable=command[0], detail=str(exc)
                )
                raise ToolExecutionError(
                    "Executable not found", command=command, problem=problem
                ) from exc

            stdout, stderr = _text(completed.stdout), _text(completed.stderr)
            returncode = completed.returncode
            if returncode == 0:
                observation.success(returncode)
            else:
                observation.failure("non_zero_exit", returncode=returncode)
                if check:
                    problem = tool_failure_problem_details(
                        command,
                        returncode=returncode,
                        detail=stderr.strip() or f"Exited with status {returncode}",
                    )
                    raise ToolExecutionError(
                        f"Subprocess returned non-zero exit status {returncode}",
                        command=command,
                        returncode=returncode,
                        streams=(stdout, stderr),
                        problem=problem,
                    )

            return ToolRunResult(
                command=argv,
                returncode=returncode,
                stdout=stdout,
                stderr=stderr,
                duration_seconds=observation.duration_seconds(),
                timed_out=False,
            )
