"""Typed configuration for the diagram pipeline.

Values come from ``APIVIZ_*`` environment variables and are overridden by CLI
flags. Command templates accept either a shell-style string or a sequence of
arguments. Only the placeholders listed in :data:`TRANSFORM_PLACEHOLDERS` and
:data:`RENDER_PLACEHOLDERS` are substituted; any other braces (for example in
an inline script) pass through untouched.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from apiviz._shared.retry import RetryPolicy
from apiviz._shared.settings import load_settings

__all__ = [
    "DEFAULT_RENDER_COMMAND",
    "DEFAULT_TRANSFORM_COMMAND",
    "RENDER_PLACEHOLDERS",
    "TRANSFORM_PLACEHOLDERS",
    "FailurePolicy",
    "ImageFormat",
    "PipelineSettings",
    "TransformInputKind",
    "expand_command",
    "load_pipeline_settings",
]

type ImageFormat = Literal["svg", "png", "pdf"]
type TransformInputKind = Literal["path", "url"]
type FailurePolicy = Literal["fail_fast", "keep_going"]

TRANSFORM_PLACEHOLDERS: Final[frozenset[str]] = frozenset({"input", "output_dir", "name"})
RENDER_PLACEHOLDERS: Final[frozenset[str]] = frozenset({"input", "output"})

# Placeholders a template must reference to be usable.
_REQUIRED_TRANSFORM: Final[frozenset[str]] = frozenset({"input", "output_dir"})
_REQUIRED_RENDER: Final[frozenset[str]] = RENDER_PLACEHOLDERS

_PLACEHOLDER_RE: Final = re.compile(r"\{([a-z_]+)\}")

# openapi-mermaid takes either a URL or a local JSON file name.
_OPENAPI_MERMAID_SCRIPT: Final[str] = (
    "const {generateDiagrams}=require('openapi-mermaid');"
    "const [src,outputPath,outputFileName]=process.argv.slice(1);"
    "const key=/^https?:/.test(src)?'openApiJsonUrl':'openApiJsonFileName';"
    "generateDiagrams({[key]:src,outputPath,outputFileName})"
    ".catch((e)=>{console.error(e);process.exit(1);});"
)

DEFAULT_TRANSFORM_COMMAND: Final[tuple[str, ...]] = (
    "node",
    "-e",
    _OPENAPI_MERMAID_SCRIPT,
    "{input}",
    "{output_dir}",
    "{name}",
)

DEFAULT_RENDER_COMMAND: Final[tuple[str, ...]] = (
    "npx",
    "--yes",
    "@mermaid-js/mermaid-cli",
    "-i",
    "{input}",
    "-o",
    "{output}",
)


def expand_command(template: tuple[str, ...], values: Mapping[str, str]) -> list[str]:
    """Substitute ``{placeholder}`` tokens in ``template`` with ``values``.

    Parameters
    ----------
    template : tuple[str, ...]
        Command arguments, possibly containing placeholders.
    values : Mapping[str, str]
        Replacement for each known placeholder.

    Returns
    -------
    list[str]
        Argument list ready for the process runner.

    Examples
    --------
    >>> expand_command(("mmdc", "-i", "{input}"), {"input": "a.mmd"})
    ['mmdc', '-i', 'a.mmd']
    """

    def _substitute(match: re.Match[str]) -> str:
        return values.get(match.group(1), match.group(0))

    return [_PLACEHOLDER_RE.sub(_substitute, token) for token in template]


def _check_placeholders(
    tokens: tuple[str, ...],
    *,
    known: frozenset[str],
    required: frozenset[str],
    field_name: str,
) -> tuple[str, ...]:
    used = {name for token in tokens for name in _PLACEHOLDER_RE.findall(token)} & known
    missing = sorted(required - used)
    if missing:
        names = ", ".join(f"{{{name}}}" for name in missing)
        message = f"{field_name} must reference {names}"
        raise ValueError(message)
    return tokens


def _split_command(value: object, *, field_name: str) -> tuple[str, ...]:
    if isinstance(value, str):
        tokens = tuple(shlex.split(value))
    elif isinstance(value, (list, tuple)):
        tokens = tuple(str(token) for token in value)
    else:
        message = f"{field_name} must be a command string or a sequence of arguments"
        raise ValueError(message)
    if not tokens:
        message = f"{field_name} must not be empty"
        raise ValueError(message)
    return tokens


class PipelineSettings(BaseSettings):
    """Settings for one pipeline run.

    Relative ``diagram_dir`` and ``image_dir`` values are anchored at
    ``output_dir``. ``image_dir`` defaults to the image format name so the
    default layout is ``yaml_output/mmd`` and ``yaml_output/svg``.
    """

    model_config = SettingsConfigDict(env_prefix="APIVIZ_", case_sensitive=False, extra="ignore")

    source_dir: Path = Field(default=Path("yaml_source"), description="Root of the document tree")
    output_dir: Path = Field(default=Path("yaml_output"), description="Base of both output roots")
    diagram_dir: Path = Field(default=Path("mmd"), description="Diagram root")
    image_dir: Path | None = Field(default=None, description="Image root")
    image_format: ImageFormat = "svg"
    diagram_extension: str = ".mmd"
    transform_command: Annotated[tuple[str, ...], NoDecode] = DEFAULT_TRANSFORM_COMMAND
    transform_input: TransformInputKind = Field(
        default="url",
        description="Whether the transformation reads local paths or fetches URLs",
    )
    render_command: Annotated[tuple[str, ...], NoDecode] = DEFAULT_RENDER_COMMAND
    puppeteer_config: Path | None = None
    temp_dir: Path | None = None
    timeout_seconds: float = Field(default=300.0, gt=0)
    retry_attempts: int = Field(default=1, ge=1)
    retry_wait_seconds: float = Field(default=0.0, ge=0)
    failure_policy: FailurePolicy = "fail_fast"

    @field_validator("transform_command", mode="before")
    @classmethod
    def _parse_transform_command(cls, value: object) -> tuple[str, ...]:
        return _check_placeholders(
            _split_command(value, field_name="transform_command"),
            known=TRANSFORM_PLACEHOLDERS,
            required=_REQUIRED_TRANSFORM,
            field_name="transform_command",
        )

    @field_validator("render_command", mode="before")
    @classmethod
    def _parse_render_command(cls, value: object) -> tuple[str, ...]:
        return _check_placeholders(
            _split_command(value, field_name="render_command"),
            known=RENDER_PLACEHOLDERS,
            required=_REQUIRED_RENDER,
            field_name="render_command",
        )

    @field_validator("diagram_extension")
    @classmethod
    def _normalise_extension(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped or stripped == ".":
            message = "diagram_extension must not be empty"
            raise ValueError(message)
        return stripped if stripped.startswith(".") else f".{stripped}"

    @property
    def diagram_root(self) -> Path:
        """Absolute root of the diagram tree."""
        return (self.output_dir / self.diagram_dir).resolve()

    @property
    def image_root(self) -> Path:
        """Absolute root of the image tree."""
        image_dir = self.image_dir if self.image_dir is not None else Path(self.image_format)
        return (self.output_dir / image_dir).resolve()

    @property
    def image_suffix(self) -> str:
        """File suffix of rendered images, including the dot."""
        return f".{self.image_format}"

    def retry_policy(self) -> RetryPolicy:
        """Return the retry policy applied to both external processes."""
        return RetryPolicy(attempts=self.retry_attempts, wait_seconds=self.retry_wait_seconds)


def load_pipeline_settings(**overrides: object) -> PipelineSettings:
    """Load :class:`PipelineSettings` from the environment with ``overrides`` applied.

    ``None`` overrides are ignored so unset CLI flags fall back to the
    environment and defaults.

    Raises
    ------
    SettingsError
        If validation fails.
    """
    explicit = {key: value for key, value in overrides.items() if value is not None}

    def pipeline_settings() -> PipelineSettings:
        return PipelineSettings(**explicit)

    return load_settings(pipeline_settings)
