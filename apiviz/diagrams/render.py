"""Render diagram artifacts to images with an external renderer.

The renderer inherits this process's stdout and stderr so its diagnostics
reach the operator directly. It writes to a staging file beside the final
slot; the image is moved into place only when the renderer succeeds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from apiviz._shared.logging import get_logger, with_fields
from apiviz._shared.proc import run_tool
from apiviz._shared.process import ToolExecutionError
from apiviz._shared.retry import RetryPolicy
from apiviz.diagrams.config import DEFAULT_RENDER_COMMAND, expand_command
from apiviz.diagrams.errors import (
    ArtifactIdentificationError,
    ExternalProcessError,
    UnexpectedError,
)

if TYPE_CHECKING:
    from apiviz._shared.logging import StructuredLoggerAdapter
    from apiviz.diagrams.config import PipelineSettings

__all__ = ["Renderer", "render_diagram", "staging_path"]

LOGGER = get_logger(__name__)


def staging_path(image_path: Path) -> Path:
    """Return the temporary sibling the renderer writes to.

    The suffix is kept because renderers infer the output format from it.
    """
    return image_path.with_name(f".{image_path.stem}.rendering{image_path.suffix}")


def _discard_staged(staged: Path, logger: StructuredLoggerAdapter) -> None:
    try:
        staged.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning(
            "Failed to remove staged image", extra={"path": staged.as_posix(), "error": str(exc)}
        )


@dataclass(slots=True)
class Renderer:
    """External diagram renderer (Mermaid CLI by default)."""

    command: tuple[str, ...] = DEFAULT_RENDER_COMMAND
    puppeteer_config: Path | None = None
    timeout_seconds: float | None = 300.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    inherit_streams: bool = True

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> Renderer:
        """Build a renderer from pipeline settings."""
        return cls(
            command=settings.render_command,
            puppeteer_config=settings.puppeteer_config,
            timeout_seconds=settings.timeout_seconds,
            retry=settings.retry_policy(),
        )

    def build_command(self, diagram_path: Path, output_path: Path) -> list[str]:
        """Return the argument list for rendering ``diagram_path`` to ``output_path``."""
        argv = expand_command(
            self.command, {"input": str(diagram_path), "output": str(output_path)}
        )
        if self.puppeteer_config is not None:
            argv.extend(["--puppeteerConfigFile", str(self.puppeteer_config.resolve())])
        return argv

    def render(self, diagram_path: Path, image_path: Path, *, document: str | None = None) -> Path:
        """Render ``diagram_path`` into ``image_path``.

        Parameters
        ----------
        diagram_path : Path
            Existing diagram artifact.
        image_path : Path
            Final image slot; its directory is created first.
        document : str | None, optional
            Relative path of the source document, for error messages.

        Returns
        -------
        Path
            ``image_path``.

        Raises
        ------
        ExternalProcessError
            If the renderer is missing, disallowed, times out or exits non-zero.
        ArtifactIdentificationError
            If the renderer exits cleanly without writing an image.
        UnexpectedError
            If the image directory cannot be created, the image cannot be
            moved into place, or the process layer raises anything other than
            a tool failure (for example a ``SettingsError``).
        """
        logger = with_fields(
            LOGGER, document=document, operation="render", image=image_path.as_posix()
        )
        staged = staging_path(image_path)
        try:
            image_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            message = f"Failed to create {image_path.parent.as_posix()}: {exc}"
            raise UnexpectedError(message, document=document, expected_artifact=image_path) from exc

        argv = self.build_command(diagram_path, staged)
        try:
            self.retry.call(
                lambda: run_tool(
                    argv,
                    timeout=self.timeout_seconds,
                    check=True,
                    capture_output=not self.inherit_streams,
                )
            )
        except ToolExecutionError as exc:
            _discard_staged(staged, logger)
            message = f"Renderer failed for {diagram_path.as_posix()}"
            logger.error(message, extra={"returncode": exc.returncode})
            raise ExternalProcessError.from_tool_error(
                exc,
                step=f"Rendering {diagram_path.as_posix()}",
                document=document,
                expected_artifact=image_path,
            ) from exc
        except Exception as exc:
            _discard_staged(staged, logger)
            logger.exception("Renderer raised %s", type(exc).__name__)
            message = f"Rendering {diagram_path.as_posix()} failed for {document}: {exc}"
            raise UnexpectedError(message, document=document, expected_artifact=image_path) from exc

        if not staged.is_file():
            message = (
                f"Renderer exited cleanly but wrote no image for {diagram_path.as_posix()} "
                f"(expected {image_path.as_posix()})"
            )
            raise ArtifactIdentificationError(
                message, document=document, expected_artifact=image_path
            )
        try:
            staged.replace(image_path)
        except OSError as exc:
            message = f"Failed to move rendered image into {image_path.as_posix()}: {exc}"
            raise UnexpectedError(message, document=document, expected_artifact=image_path) from exc
        logger.info("Rendered image")
        return image_path


def render_diagram(
    diagram_path: Path,
    image_path: Path,
    settings: PipelineSettings | None = None,
    *,
    document: str | None = None,
) -> Path:
    """Render one diagram with the renderer described by ``settings``."""
    renderer = Renderer.from_settings(settings) if settings is not None else Renderer()
    return renderer.render(diagram_path, image_path, document=document)
