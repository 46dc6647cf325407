"""Typed JSON run report for the diagram pipeline.

The report lists every produced artifact and every failure of a single run.
It is emitted only when the CLI is given ``--report``; stdout stays reserved
for the artifact lines.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final, Literal, cast

import msgspec
from msgspec import UNSET, Struct, UnsetType, structs

from apiviz._shared.problem_details import ProblemDetailsDict

REPORT_SCHEMA_VERSION: Final[str] = "1.0.0"

type RunStatus = Literal["success", "error"]
type DocumentState = Literal["discovered", "normalized", "generated", "renamed", "rendered"]


class ArtifactEntry(Struct, kw_only=True):
    """Artifacts produced for one document.

    ``image`` is unset when the document failed before rendering.
    """

    document: str
    state: DocumentState
    diagram: str | UnsetType = UNSET
    image: str | UnsetType = UNSET


class FailureEntry(Struct, kw_only=True):
    """A document that failed, with the artifact it was expected to produce."""

    document: str
    state: DocumentState
    error: str
    message: str
    expected_artifact: str | UnsetType = msgspec.field(default=UNSET, name="expectedArtifact")
    problem: dict[str, Any] | UnsetType = UNSET


def _default_generated_at() -> str:
    return datetime.now(tz=UTC).isoformat()


def _default_artifacts() -> list[ArtifactEntry]:
    return []


def _default_failures() -> list[FailureEntry]:
    return []


class RunReport(Struct, kw_only=True):
    """Summary of one pipeline run."""

    schema_version: str = msgspec.field(default=REPORT_SCHEMA_VERSION, name="schemaVersion")
    generated_at: str = msgspec.field(default_factory=_default_generated_at, name="generatedAt")
    status: RunStatus = "success"
    correlation_id: str = msgspec.field(default="", name="correlationId")
    source: str = ""
    duration_seconds: float = msgspec.field(default=0.0, name="durationSeconds")
    documents: int = 0
    artifacts: list[ArtifactEntry] = msgspec.field(default_factory=_default_artifacts)
    failures: list[FailureEntry] = msgspec.field(default_factory=_default_failures)
    problem: dict[str, Any] | UnsetType = UNSET


def _replace_report(report: RunReport, **updates: object) -> RunReport:
    return cast("RunReport", structs.replace(report, **updates))


_SET_BUILDER_ATTR = object.__setattr__


@dataclass(slots=True, frozen=True)
class RunReportBuilder:
    """Fluent builder for assembling a :class:`RunReport`."""

    report: RunReport

    @classmethod
    def create(cls, *, source: str, correlation_id: str) -> RunReportBuilder:
        """Start a report for a run over ``source``."""
        return cls(RunReport(source=source, correlation_id=correlation_id))

    def _swap(self, *, update: RunReport) -> RunReportBuilder:
        _SET_BUILDER_ATTR(self, "report", update)
        return self

    def set_documents(self, count: int) -> RunReportBuilder:
        """Record how many documents discovery found."""
        return self._swap(update=_replace_report(self.report, documents=count))

    def add_artifact(
        self,
        *,
        document: str,
        state: DocumentState,
        diagram: str | None = None,
        image: str | None = None,
    ) -> RunReportBuilder:
        """Append the artifacts reached by ``document``."""
        entry = ArtifactEntry(
            document=document,
            state=state,
            diagram=diagram if diagram is not None else UNSET,
            image=image if image is not None else UNSET,
        )
        return self._swap(
            update=_replace_report(self.report, artifacts=[*self.report.artifacts, entry])
        )

    def add_failure(
        self,
        *,
        document: str,
        state: DocumentState,
        error: str,
        message: str,
        expected_artifact: str | None = None,
        problem: ProblemDetailsDict | None = None,
    ) -> RunReportBuilder:
        """Append a failure and flip the run status to ``error``.

        Parameters
        ----------
        document : str
            Relative path of the failing document.
        state : DocumentState
            Last state the document reached before failing.
        error : str
            Exception class name.
        message : str
            Human-readable failure message.
        expected_artifact : str | None, optional
            Artifact the failing step should have produced.
        problem : ProblemDetailsDict | None, optional
            Problem Details payload of the failure.

        Returns
        -------
        RunReportBuilder
            Builder instance for chaining.
        """
        entry = FailureEntry(
            document=document,
            state=state,
            error=error,
            message=message,
            expected_artifact=expected_artifact if expected_artifact is not None else UNSET,
            problem=problem if problem is not None else UNSET,
        )
        return self._swap(
            update=_replace_report(
                self.report, failures=[*self.report.failures, entry], status="error"
            )
        )

    def set_problem(self, problem: ProblemDetailsDict | None) -> RunReportBuilder:
        """Attach a run-level Problem Details payload (configuration failures)."""
        if problem is None:
            return self._swap(update=_replace_report(self.report, problem=UNSET))
        return self._swap(update=_replace_report(self.report, problem=problem, status="error"))

    def finish(self, *, duration_seconds: float) -> RunReport:
        """Return the completed report."""
        return _replace_report(self.report, duration_seconds=float(duration_seconds))


def render_report(report: RunReport, *, indent: int = 2) -> str:
    """Return ``report`` as an indented JSON string."""
    payload: dict[str, object] = msgspec.to_builtins(report)
    return json.dumps(payload, indent=indent)


def write_report(report: RunReport, path: Path) -> Path:
    """Write ``report`` to ``path``, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_report(report) + "\n", encoding="utf-8")
    return path


__all__ = [
    "REPORT_SCHEMA_VERSION",
    "ArtifactEntry",
    "DocumentState",
    "FailureEntry",
    "RunReport",
    "RunReportBuilder",
    "RunStatus",
    "render_report",
    "write_report",
]
