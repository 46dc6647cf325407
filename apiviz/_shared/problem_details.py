"""RFC 9457 Problem Details payloads for apiviz failures.

Pipeline errors, settings errors and subprocess failures all carry a flat JSON
object: the five standard members plus extension members at the top level.
Subprocess payloads share one shape, keyed by failure kind, with the
offending command line under ``command`` and an ``urn:tool:<name>:<suffix>``
instance.

Examples
--------
>>> problem = tool_failure_problem_details(["/usr/bin/mmdc", "-i", "a.mmd"], returncode=1,
...                                        detail="Parse error")
>>> problem["instance"]
'urn:tool:mmdc:exit-1'
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

__all__ = [
    "PROBLEM_TYPE_BASE",
    "JsonValue",
    "ProblemDetailsDict",
    "ProblemDetailsParams",
    "build_problem_details",
    "render_problem",
    "tool_digest_mismatch_problem_details",
    "tool_disallowed_problem_details",
    "tool_failure_problem_details",
    "tool_missing_problem_details",
    "tool_timeout_problem_details",
]

PROBLEM_TYPE_BASE: Final[str] = "https://apiviz.dev/problems"

type JsonValue = str | int | float | bool | None | list[JsonValue] | dict[str, JsonValue]
type ProblemDetailsDict = dict[str, JsonValue]


@dataclass(frozen=True, slots=True)
class ProblemDetailsParams:
    """Standard members of a Problem Details payload plus its extensions."""

    type: str
    title: str
    status: int
    detail: str
    instance: str
    extensions: Mapping[str, JsonValue] | None = None


def build_problem_details(params: ProblemDetailsParams) -> ProblemDetailsDict:
    """Return the payload for ``params`` with extensions flattened in.

    Extensions never replace the standard members.
    """
    extensions = params.extensions or {}
    payload: ProblemDetailsDict = {str(key): value for key, value in extensions.items()}
    payload.update(
        type=params.type,
        title=params.title,
        status=params.status,
        detail=params.detail,
        instance=params.instance,
    )
    return payload


@dataclass(frozen=True, slots=True)
class _ToolFailureKind:
    category: str
    status: int
    title: str


_TIMEOUT: Final = _ToolFailureKind("tool-timeout", 504, "Tool execution timed out")
_MISSING: Final = _ToolFailureKind("tool-missing", 500, "Executable not found")
_DISALLOWED: Final = _ToolFailureKind("tool-exec-disallowed", 403, "Executable not allowed")
_DIGEST: Final = _ToolFailureKind(
    "tool-exec-digest-mismatch", 403, "Executable digest verification failed"
)
_EXIT: Final = _ToolFailureKind("tool-failure", 500, "Tool returned a non-zero exit code")


def _tool_problem(
    kind: _ToolFailureKind,
    command: Sequence[str],
    *,
    detail: str,
    suffix: str,
    **extensions: JsonValue,
) -> ProblemDetailsDict:
    argv: list[JsonValue] = [str(part) for part in command]
    tool = Path(command[0]).name if command else "<unknown>"
    return build_problem_details(
        ProblemDetailsParams(
            type=f"{PROBLEM_TYPE_BASE}/{kind.category}",
            title=kind.title,
            status=kind.status,
            detail=detail,
            instance=f"urn:tool:{tool}:{suffix}",
            extensions={"command": argv, **extensions},
        )
    )


def tool_timeout_problem_details(
    command: Sequence[str], *, timeout: float | None
) -> ProblemDetailsDict:
    """Describe a subprocess killed after ``timeout`` seconds."""
    name = f"Command '{command[0]}'" if command else "Command"
    if timeout is None:
        return _tool_problem(_TIMEOUT, command, detail=f"{name} timed out", suffix="timeout")
    return _tool_problem(
        _TIMEOUT,
        command,
        detail=f"{name} timed out after {timeout} seconds",
        suffix="timeout",
        timeout=timeout,
    )


def tool_missing_problem_details(
    command: Sequence[str], *, executable: str, detail: str
) -> ProblemDetailsDict:
    """Describe an executable that cannot be found."""
    return _tool_problem(_MISSING, command or [executable], detail=detail, suffix="missing")


def tool_disallowed_problem_details(
    command: Sequence[str], *, executable: Path, allowlist: Sequence[str]
) -> ProblemDetailsDict:
    """Describe an executable rejected by ``TOOLS_EXEC_ALLOWLIST``."""
    return _tool_problem(
        _DISALLOWED,
        command,
        detail=f"Executable '{executable.name}' is not permitted by TOOLS_EXEC_ALLOWLIST",
        suffix="disallowed",
        executable=str(executable),
        allowlist=list(allowlist),
    )


def tool_digest_mismatch_problem_details(
    command: Sequence[str],
    *,
    executable: Path,
    expected_digest: str,
    actual_digest: str | None,
    reason: str,
) -> ProblemDetailsDict:
    """Describe an executable whose SHA-256 differs from ``TOOLS_EXEC_DIGESTS``.

    ``actual_digest`` is ``None`` when the executable vanished before hashing.
    """
    extensions: dict[str, JsonValue] = {
        "executable": str(executable),
        "expectedDigest": expected_digest,
        "reason": reason,
    }
    if actual_digest is not None:
        extensions["actualDigest"] = actual_digest
    return _tool_problem(
        _DIGEST,
        command,
        detail=f"Digest of '{executable.name}' does not match TOOLS_EXEC_DIGESTS",
        suffix="digest-mismatch",
        **extensions,
    )


def tool_failure_problem_details(
    command: Sequence[str], *, returncode: int, detail: str
) -> ProblemDetailsDict:
    """Describe a subprocess that exited with ``returncode``."""
    return _tool_problem(
        _EXIT, command, detail=detail, suffix=f"exit-{returncode}", returncode=returncode
    )


def render_problem(problem: ProblemDetailsDict) -> str:
    """Render ``problem`` as one line of JSON."""
    return json.dumps(problem, default=str)
