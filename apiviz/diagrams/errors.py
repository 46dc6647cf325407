"""Error hierarchy for diagram pipeline failures.

Every error carries an RFC 9457 Problem Details payload in ``problem`` and,
when known, the relative path of the offending document and the artifact the
failing step was expected to produce.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from apiviz._shared.problem_details import (
    PROBLEM_TYPE_BASE,
    JsonValue,
    ProblemDetailsDict,
    ProblemDetailsParams,
    build_problem_details,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from apiviz._shared.process import ToolExecutionError

__all__ = [
    "ArtifactIdentificationError",
    "ConfigurationError",
    "DiagramPipelineError",
    "DocumentParseError",
    "ExternalProcessError",
    "UnexpectedError",
]


class DiagramPipelineError(RuntimeError):
    """Base exception for all diagram pipeline failures.

    Parameters
    ----------
    message : str
        Human-readable error message.
    document : str | None, optional
        Relative path of the document being processed.
    expected_artifact : Path | None, optional
        Artifact the failing step should have produced.
    extensions : Mapping[str, JsonValue] | None, optional
        Extra Problem Details members.
    """

    category: ClassVar[str] = "pipeline-error"
    title: ClassVar[str] = "Diagram pipeline failed"
    status: ClassVar[int] = 500

    def __init__(
        self,
        message: str,
        *,
        document: str | None = None,
        expected_artifact: Path | None = None,
        extensions: Mapping[str, JsonValue] | None = None,
    ) -> None:
        super().__init__(message)
        self.document = document
        self.expected_artifact = expected_artifact
        merged: dict[str, JsonValue] = {"exception_type": type(self).__name__}
        if document is not None:
            merged["document"] = document
        if expected_artifact is not None:
            merged["expected_artifact"] = Path(expected_artifact).as_posix()
        if extensions:
            merged.update(extensions)
        self.problem: ProblemDetailsDict = build_problem_details(
            ProblemDetailsParams(
                type=f"{PROBLEM_TYPE_BASE}/{self.category}",
                title=self.title,
                status=self.status,
                detail=message,
                instance=f"urn:apiviz:{self.category}:{document or 'run'}",
                extensions=merged,
            )
        )


class ConfigurationError(DiagramPipelineError):
    """Raised when the run cannot start: missing source root, no documents, collisions."""

    category = "configuration-invalid"
    title = "Invalid pipeline configuration"
    status = 400


class ArtifactIdentificationError(DiagramPipelineError):
    """Raised when no diagram artifact can be identified after generation."""

    category = "artifact-unidentified"
    title = "Diagram artifact could not be identified"


class ExternalProcessError(DiagramPipelineError):
    """Raised when the transformation or renderer process fails or times out."""

    category = "external-process-failed"
    title = "External process failed"
    status = 502

    def __init__(
        self,
        message: str,
        *,
        document: str | None = None,
        expected_artifact: Path | None = None,
        extensions: Mapping[str, JsonValue] | None = None,
        returncode: int | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(
            message,
            document=document,
            expected_artifact=expected_artifact,
            extensions=extensions,
        )
        self.returncode = returncode
        self.timed_out = timed_out

    @classmethod
    def from_tool_error(
        cls,
        exc: ToolExecutionError,
        *,
        step: str,
        document: str | None,
        expected_artifact: Path | None,
    ) -> ExternalProcessError:
        """Wrap a :class:`ToolExecutionError` raised by the shared process runner."""
        reason = "timed out" if exc.timed_out else str(exc)
        message = f"{step} failed for {document or '<unknown>'}: {reason}"
        if expected_artifact is not None:
            message = f"{message} (expected {Path(expected_artifact).as_posix()})"
        extensions: dict[str, JsonValue] = {"step": step, "returncode": exc.returncode}
        if exc.problem is not None:
            extensions["cause"] = exc.problem
        return cls(
            message,
            document=document,
            expected_artifact=expected_artifact,
            extensions=extensions,
            returncode=exc.returncode,
            timed_out=exc.timed_out,
        )


class UnexpectedError(DiagramPipelineError):
    """Raised for filesystem errors and anything else not classified above."""

    category = "unexpected-error"
    title = "Unexpected pipeline failure"


class DocumentParseError(UnexpectedError):
    """Raised when a YAML document cannot be decoded."""

    category = "document-parse-error"
    title = "Document could not be parsed"
    status = 422
