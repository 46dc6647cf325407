"""Run the document-to-diagram transformation and reconcile its output.

The transformation chooses its own output file name: sometimes the requested
one, sometimes an unpredictable one, sometimes several files. Reconciliation
therefore snapshots the diagram-like files of the output directory before and
after the run, diffs them by path, and renames the chosen file to the
canonical ``{base_name}{extension}``.

Selection rules:

- exactly one new file: that file;
- several new files: the most recently modified (ties broken by name);
- no new file: the most recently modified diagram-like file in the directory,
  with a warning when its name is not the expected one;
- no diagram-like file at all: :class:`ArtifactIdentificationError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from apiviz._shared.logging import get_logger, with_fields
from apiviz._shared.proc import run_tool
from apiviz._shared.process import ToolExecutionError
from apiviz._shared.retry import RetryPolicy
from apiviz.diagrams.config import DEFAULT_TRANSFORM_COMMAND, expand_command
from apiviz.diagrams.errors import (
    ArtifactIdentificationError,
    DiagramPipelineError,
    ExternalProcessError,
    UnexpectedError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from apiviz.diagrams.normalize import TransformInput

__all__ = [
    "CallableTransform",
    "CommandTransform",
    "DiagramTransform",
    "Snapshot",
    "generate_diagram",
    "produce_diagram",
    "reconcile_artifact",
    "select_produced_artifact",
    "snapshot_artifacts",
]

LOGGER = get_logger(__name__)

type Snapshot = dict[Path, int]


@runtime_checkable
class DiagramTransform(Protocol):
    """Document-to-diagram transformation.

    ``accepts_local_paths`` tells the normalizer whether the transformation
    can read a file path or needs an ``http://`` URL.
    """

    accepts_local_paths: bool

    def __call__(self, source: TransformInput, output_dir: Path, name: str) -> None: ...


@dataclass(slots=True)
class CommandTransform:
    """Transformation backed by an external command.

    The command template may use ``{input}``, ``{output_dir}`` and ``{name}``.
    Output is captured and logged at debug level so stdout carries only
    artifact lines.
    """

    command: tuple[str, ...] = DEFAULT_TRANSFORM_COMMAND
    accepts_local_paths: bool = False
    timeout_seconds: float | None = 300.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    env: Mapping[str, str] | None = None

    def __call__(self, source: TransformInput, output_dir: Path, name: str) -> None:
        """Run the command for ``source``.

        Raises
        ------
        ToolExecutionError
            If the command is disallowed, missing, times out or exits non-zero
            on the final attempt.
        """
        argv = expand_command(
            self.command,
            {"input": source.location, "output_dir": str(output_dir), "name": name},
        )
        result = self.retry.call(
            lambda: run_tool(
                argv,
                env=self.env,
                timeout=self.timeout_seconds,
                check=True,
            )
        )
        if result.stdout.strip() or result.stderr.strip():
            LOGGER.debug(
                "Transformation output",
                extra={"operation": "generate", "stdout": result.stdout, "stderr": result.stderr},
            )


@dataclass(slots=True)
class CallableTransform:
    """Transformation backed by an in-process callable."""

    func: Callable[[TransformInput, Path, str], object]
    accepts_local_paths: bool = True

    def __call__(self, source: TransformInput, output_dir: Path, name: str) -> None:
        self.func(source, output_dir, name)


def snapshot_artifacts(directory: Path, extension: str = ".mmd") -> Snapshot:
    """Return diagram-like files directly inside ``directory`` with their mtimes.

    Parameters
    ----------
    directory : Path
        Directory to scan; a missing directory yields an empty snapshot.
    extension : str, optional
        Diagram file suffix, matched case-insensitively. Default is ``.mmd``.

    Returns
    -------
    Snapshot
        Mapping of file path to modification time in nanoseconds.
    """
    if not directory.is_dir():
        return {}
    suffix = extension.lower()
    return {
        entry: entry.stat().st_mtime_ns
        for entry in directory.iterdir()
        if entry.is_file() and entry.suffix.lower() == suffix
    }


def _newest(candidates: Snapshot) -> Path:
    return min(candidates.items(), key=lambda item: (-item[1], item[0].name))[0]


def select_produced_artifact(before: Snapshot, after: Snapshot) -> Path | None:
    """Pick the file the transformation produced.

    Returns ``None`` when ``after`` holds no diagram-like file at all.

    Examples
    --------
    >>> a, b = Path("a.mmd"), Path("b.mmd")
    >>> select_produced_artifact({a: 1}, {a: 1, b: 2})
    PosixPath('b.mmd')
    >>> select_produced_artifact({a: 1, b: 2}, {a: 5, b: 2})
    PosixPath('a.mmd')
    """
    fresh = {path: mtime for path, mtime in after.items() if path not in before}
    if fresh:
        return _newest(fresh)
    if after:
        return _newest(after)
    return None


def reconcile_artifact(produced: Path, target: Path) -> Path:
    """Rename ``produced`` to ``target``, replacing any existing file there."""
    if produced != target:
        produced.replace(target)
    return target


def produce_diagram(
    transform: DiagramTransform,
    source: TransformInput,
    output_dir: Path,
    base_name: str,
    *,
    extension: str = ".mmd",
    document: str | None = None,
) -> Path:
    """Run ``transform`` into ``output_dir`` and return the file it produced.

    Raises
    ------
    ExternalProcessError
        If an external transformation fails or times out.
    ArtifactIdentificationError
        If no diagram-like file can be identified afterwards.
    UnexpectedError
        If the transformation fails in any other way.
    """
    expected = output_dir / f"{base_name}{extension}"
    logger = with_fields(LOGGER, document=document, operation="generate")
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        before = snapshot_artifacts(output_dir, extension)
        transform(source, output_dir, base_name)
        after = snapshot_artifacts(output_dir, extension)
    except ToolExecutionError as exc:
        raise ExternalProcessError.from_tool_error(
            exc, step="Diagram generation", document=document, expected_artifact=expected
        ) from exc
    except DiagramPipelineError:
        raise
    except Exception as exc:
        message = f"Diagram generation failed for {document or '<unknown>'}: {exc}"
        raise UnexpectedError(message, document=document, expected_artifact=expected) from exc

    produced = select_produced_artifact(before, after)
    if produced is None:
        message = (
            f"No {extension} file found in {output_dir.as_posix()} after generating "
            f"{document or '<unknown>'} (expected {expected.as_posix()})"
        )
        raise ArtifactIdentificationError(message, document=document, expected_artifact=expected)
    new_files = after.keys() - before.keys()
    if produced not in new_files and produced.stem != base_name:
        # Nothing new was written; the newest file may belong to a sibling document.
        logger.warning(
            "No new diagram was written; falling back to %s",
            produced.name,
            extra={"produced": produced.as_posix(), "expected": expected.as_posix()},
        )
    logger.debug(
        "Identified produced diagram",
        extra={"produced": produced.as_posix(), "new_files": len(new_files)},
    )
    return produced


def generate_diagram(
    transform: DiagramTransform,
    source: TransformInput,
    output_dir: Path,
    base_name: str,
    *,
    extension: str = ".mmd",
    document: str | None = None,
) -> Path:
    """Produce the diagram for one document and give it its canonical name.

    Returns
    -------
    Path
        ``output_dir / f"{base_name}{extension}"``.
    """
    produced = produce_diagram(
        transform, source, output_dir, base_name, extension=extension, document=document
    )
    target = output_dir / f"{base_name}{extension}"
    try:
        return reconcile_artifact(produced, target)
    except OSError as exc:
        message = f"Failed to rename {produced.as_posix()} to {target.as_posix()}: {exc}"
        raise UnexpectedError(message, document=document, expected_artifact=target) from exc
