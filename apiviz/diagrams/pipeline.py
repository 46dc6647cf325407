"""Drive the document → diagram → image pipeline and expose the CLI.

Each document moves through ``discovered → normalized → generated → renamed
→ rendered``. Documents are processed one at a time; a document's generation
finishes (and its temporary input is removed) before its rendering starts,
and both finish before the next document begins.

Failure policy
--------------
``fail_fast`` (default) stops at the first failing document. ``keep_going``
records the failure, skips the rest of that document's steps and continues
with the next document. Either way the run exits with status 1 when anything
failed.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
import uuid
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Final, TextIO

from apiviz._shared.logging import get_logger, with_fields
from apiviz._shared.problem_details import render_problem
from apiviz._shared.report import RunReportBuilder, write_report
from apiviz._shared.settings import SettingsError
from apiviz._shared.validation import ValidationError, require_file
from apiviz.diagrams.config import PipelineSettings, load_pipeline_settings
from apiviz.diagrams.content_server import ContentServer
from apiviz.diagrams.discovery import SourceDocument, discover_documents
from apiviz.diagrams.errors import ConfigurationError, DiagramPipelineError, UnexpectedError
from apiviz.diagrams.generate import CommandTransform, produce_diagram, reconcile_artifact
from apiviz.diagrams.normalize import normalized_input
from apiviz.diagrams.paths import display_path, ensure_unique
from apiviz.diagrams.render import Renderer
from apiviz_common.logging import CorrelationContext, get_correlation_id, setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

    from apiviz._shared.report import RunReport
    from apiviz.diagrams.generate import DiagramTransform
    from apiviz.diagrams.paths import OutputLocator

__all__ = [
    "DiagramPipeline",
    "DocumentRun",
    "DocumentState",
    "PipelineResult",
    "build_parser",
    "describe_failure",
    "main",
]

LOGGER = get_logger(__name__)

EXIT_SUCCESS: Final[int] = 0
EXIT_FAILURE: Final[int] = 1


class DocumentState(StrEnum):
    """Progress of one document through the pipeline."""

    DISCOVERED = "discovered"
    NORMALIZED = "normalized"
    GENERATED = "generated"
    RENAMED = "renamed"
    RENDERED = "rendered"


@dataclass(slots=True)
class DocumentRun:
    """Per-document state and expected artifact locations."""

    document: SourceDocument
    locator: OutputLocator
    diagram_path: Path
    image_path: Path
    state: DocumentState = DocumentState.DISCOVERED
    error: DiagramPipelineError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(slots=True)
class PipelineResult:
    """Outcome of a pipeline run."""

    runs: list[DocumentRun] = field(default_factory=list)
    error: DiagramPipelineError | None = None

    @property
    def failures(self) -> list[DiagramPipelineError]:
        """Every error of the run, document-level first."""
        errors = [run.error for run in self.runs if run.error is not None]
        if self.error is not None:
            errors.append(self.error)
        return errors

    @property
    def exit_code(self) -> int:
        """``0`` when every document reached ``rendered``, otherwise ``1``."""
        return EXIT_FAILURE if self.failures else EXIT_SUCCESS


class DiagramPipeline:
    """Serial pipeline over every document under the source root.

    Parameters
    ----------
    settings : PipelineSettings
        Run configuration.
    transform : DiagramTransform | None, optional
        Document-to-diagram transformation. Defaults to a
        :class:`CommandTransform` built from ``settings``.
    renderer : Renderer | None, optional
        Diagram-to-image renderer. Defaults to one built from ``settings``.
    stdout : TextIO | None, optional
        Stream receiving the ``MMD:``/``SVG:`` artifact lines. Defaults to the
        current ``sys.stdout``.
    """

    def __init__(
        self,
        settings: PipelineSettings,
        *,
        transform: DiagramTransform | None = None,
        renderer: Renderer | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self.settings = settings
        self.transform: DiagramTransform = transform or CommandTransform(
            command=settings.transform_command,
            accepts_local_paths=settings.transform_input == "path",
            timeout_seconds=settings.timeout_seconds,
            retry=settings.retry_policy(),
        )
        self.renderer = renderer or Renderer.from_settings(settings)
        self._stdout = stdout
        self.report = RunReportBuilder.create(
            source=settings.source_dir.as_posix(), correlation_id=get_correlation_id() or ""
        )

    @property
    def stdout(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    def plan(self) -> list[DocumentRun]:
        """Discover documents and compute their artifact locations.

        Raises
        ------
        ConfigurationError
            If the source root is missing or empty, two documents collide, or
            the Puppeteer configuration file does not exist.
        """
        documents = discover_documents(self.settings.source_dir)
        index = ensure_unique(documents)
        self._check_puppeteer_config()
        diagram_root = self.settings.diagram_root
        image_root = self.settings.image_root
        return [
            DocumentRun(
                document=document,
                locator=locator,
                diagram_path=locator.artifact_under(
                    diagram_root, self.settings.diagram_extension
                ),
                image_path=locator.artifact_under(image_root, self.settings.image_suffix),
            )
            for locator, document in index.items()
        ]

    def _check_puppeteer_config(self) -> None:
        config = self.settings.puppeteer_config
        if config is None:
            return
        try:
            require_file(config, description="Puppeteer configuration")
        except ValidationError as exc:
            raise ConfigurationError(
                str(exc), extensions={"puppeteer_config": config.as_posix()}
            ) from exc

    def _prepare_roots(self) -> None:
        for root in (self.settings.diagram_root, self.settings.image_root):
            try:
                root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                message = f"Failed to create output directory {root.as_posix()}: {exc}"
                raise ConfigurationError(message) from exc

    def _display(self, path: Path) -> str:
        # Relative to the output base; absolute for roots placed outside it.
        return display_path(path.resolve(), self.settings.output_dir.resolve())

    def _emit(self, label: str, path: Path) -> None:
        print(f"{label}: {self._display(path)}", file=self.stdout, flush=True)

    def run(self) -> PipelineResult:
        """Process every document and return the aggregated result.

        Run-level configuration failures are returned in
        :attr:`PipelineResult.error`; nothing is written in that case.
        """
        result = PipelineResult()
        try:
            result.runs = self.plan()
            self._prepare_roots()
        except ConfigurationError as exc:
            LOGGER.error(str(exc), extra={"operation": "plan", "problem": exc.problem})
            result.error = exc
            self.report.set_problem(exc.problem)
            return result

        self.report.set_documents(len(result.runs))
        with ExitStack() as stack:
            server: ContentServer | None = None
            if not self.transform.accepts_local_paths:
                try:
                    server = stack.enter_context(ContentServer())
                except OSError as exc:
                    message = f"Failed to start the local content server: {exc}"
                    result.error = UnexpectedError(message)
                    self.report.set_problem(result.error.problem)
                    return result
            for run in result.runs:
                self._process(run, server)
                self._record(run)
                if run.failed and self.settings.failure_policy == "fail_fast":
                    LOGGER.warning(
                        "Stopping after first failure",
                        extra={"operation": "run", "document": run.document.display_name},
                    )
                    break
        return result

    def _process(self, run: DocumentRun, server: ContentServer | None) -> None:
        document = run.document.display_name
        logger = with_fields(LOGGER, document=document, operation="document")
        diagram_dir = run.locator.directory_under(self.settings.diagram_root)
        expected = run.diagram_path
        try:
            with normalized_input(
                run.document,
                kind="path" if server is None else "url",
                temp_dir=self.settings.temp_dir,
                server=server,
            ) as source:
                run.state = DocumentState.NORMALIZED
                produced = produce_diagram(
                    self.transform,
                    source,
                    diagram_dir,
                    run.locator.base_name,
                    extension=self.settings.diagram_extension,
                    document=document,
                )
                run.state = DocumentState.GENERATED

            reconcile_artifact(produced, run.diagram_path)
            run.state = DocumentState.RENAMED
            self._emit("MMD", run.diagram_path)

            expected = run.image_path
            self.renderer.render(run.diagram_path, run.image_path, document=document)
            run.state = DocumentState.RENDERED
            self._emit(self.settings.image_format.upper(), run.image_path)
        except DiagramPipelineError as exc:
            run.error = exc
        except OSError as exc:
            message = f"Processing {document} failed: {exc} (expected {expected.as_posix()})"
            error = UnexpectedError(message, document=document, expected_artifact=expected)
            error.__cause__ = exc
            run.error = error

        if run.error is not None:
            logger.error(
                str(run.error),
                extra={"state": run.state.value, "problem": run.error.problem},
            )
        else:
            logger.info("Document rendered", extra={"state": run.state.value})

    def _record(self, run: DocumentRun) -> None:
        diagram = (
            self._display(run.diagram_path)
            if run.state in {DocumentState.RENAMED, DocumentState.RENDERED}
            else None
        )
        image = self._display(run.image_path) if run.state is DocumentState.RENDERED else None
        self.report.add_artifact(
            document=run.document.display_name,
            state=run.state.value,
            diagram=diagram,
            image=image,
        )
        if run.error is not None:
            expected = run.error.expected_artifact
            self.report.add_failure(
                document=run.document.display_name,
                state=run.state.value,
                error=type(run.error).__name__,
                message=str(run.error),
                expected_artifact=self._display(expected) if expected else None,
                problem=run.error.problem,
            )


def describe_failure(error: DiagramPipelineError) -> str:
    """Return a one-line message naming the document and the expected artifact."""
    message = str(error)
    if error.document is not None and error.document not in message:
        message = f"{error.document}: {message}"
    expected = error.expected_artifact
    if expected is not None:
        shown = display_path(expected, Path.cwd())
        if expected.as_posix() not in message and shown not in message:
            message = f"{message} (expected {shown})"
    return message


def build_parser() -> argparse.ArgumentParser:
    """Return the ``apiviz`` argument parser.

    Defaults come from ``APIVIZ_*`` environment variables through
    :class:`PipelineSettings`; flags left unset do not override them.
    """
    p = argparse.ArgumentParser(
        prog="apiviz",
        description="Render OpenAPI documents to Mermaid diagrams and images.",
    )
    p.add_argument("--source", type=Path, default=None, help="Document root (default: yaml_source)")
    p.add_argument("--output", type=Path, default=None, help="Output base (default: yaml_output)")
    p.add_argument(
        "--diagram-dir",
        type=Path,
        default=None,
        help="Diagram root, relative to --output unless absolute (default: mmd)",
    )
    p.add_argument(
        "--image-dir",
        type=Path,
        default=None,
        help="Image root, relative to --output unless absolute (default: the image format)",
    )
    p.add_argument(
        "--format",
        choices=["svg", "png", "pdf"],
        default=None,
        help="Image format (default: svg)",
    )
    p.add_argument(
        "--keep-going",
        action="store_true",
        default=None,
        help="Continue with remaining documents after a failure (still exits 1)",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Timeout in seconds for each external process (default: 300)",
    )
    p.add_argument(
        "--retries",
        type=int,
        default=None,
        help="Total attempts for each external process (default: 1)",
    )
    p.add_argument(
        "--puppeteer-config",
        type=Path,
        default=None,
        help="Puppeteer configuration file passed to the renderer",
    )
    p.add_argument("--report", type=Path, default=None, help="Write a JSON run report to PATH")
    p.add_argument("--verbose", action="store_true", help="Verbose logging")
    return p


def _settings_from_args(args: argparse.Namespace) -> PipelineSettings:
    return load_pipeline_settings(
        source_dir=args.source,
        output_dir=args.output,
        diagram_dir=args.diagram_dir,
        image_dir=args.image_dir,
        image_format=args.format,
        failure_policy="keep_going" if args.keep_going else None,
        timeout_seconds=args.timeout,
        retry_attempts=args.retries,
        puppeteer_config=args.puppeteer_config,
    )


def _write_report(report: RunReport, path: Path | None) -> None:
    if path is None:
        return
    try:
        write_report(report, path)
    except OSError:
        LOGGER.exception("Failed to write run report", extra={"path": path.as_posix()})


def main(argv: Sequence[str] | None = None) -> int:
    """Run the pipeline from the command line and return the exit status."""
    args = build_parser().parse_args(argv)

    if not logging.getLogger().handlers:
        log_level = logging.INFO if args.verbose else logging.WARNING
        setup_logging(level=log_level)

    correlation_id = os.getenv("APIVIZ_CORRELATION_ID") or uuid.uuid4().hex
    with CorrelationContext(correlation_id):
        try:
            settings = _settings_from_args(args)
        except SettingsError as exc:
            LOGGER.error(str(exc), extra={"operation": "configure", "problem": exc.problem})
            print(f"error: {exc}", file=sys.stderr)
            print(render_problem(exc.problem), file=sys.stderr)
            return EXIT_FAILURE

        start = time.monotonic()
        pipeline = DiagramPipeline(settings)
        result = pipeline.run()
        duration = time.monotonic() - start

        for failure in result.failures:
            print(f"error: {describe_failure(failure)}", file=sys.stderr)
        if result.exit_code == EXIT_SUCCESS:
            LOGGER.info(
                "Run complete",
                extra={"operation": "run", "documents": len(result.runs), "duration_s": duration},
            )
        _write_report(pipeline.report.finish(duration_seconds=duration), args.report)
        return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
