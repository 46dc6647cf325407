"""Environment-driven settings for the process layer.

``load_settings`` wraps any ``BaseSettings`` factory so a validation failure
surfaces as :class:`SettingsError` with a Problem Details payload. The
``TOOLS_*`` variables that govern subprocess execution are read once into
:class:`ToolRuntimeSettings` and cached until :func:`reset_runtime_settings`.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from fnmatch import fnmatch
from pathlib import Path
from typing import Annotated, Final

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from apiviz._shared.problem_details import (
    PROBLEM_TYPE_BASE,
    JsonValue,
    ProblemDetailsDict,
    ProblemDetailsParams,
    build_problem_details,
)

__all__: Final[list[str]] = [
    "DEFAULT_EXEC_ALLOWLIST",
    "SettingsError",
    "ToolRuntimeSettings",
    "get_runtime_settings",
    "load_settings",
    "reset_runtime_settings",
    "split_csv",
]

# Node tooling, the python stand-ins used in tests, and a few coreutils.
DEFAULT_EXEC_ALLOWLIST: Final[tuple[str, ...]] = (
    "node",
    "npx",
    "mmdc",
    "python*",
    "sh",
    "echo",
    "cat",
    "env",
    "sleep",
    "false",
    "true",
)


class SettingsError(RuntimeError):
    """Raised when typed settings fail validation."""

    def __init__(
        self,
        message: str,
        *,
        problem: ProblemDetailsDict,
        errors: Sequence[dict[str, JsonValue]],
    ) -> None:
        super().__init__(message)
        self.problem = problem
        self.errors: tuple[dict[str, JsonValue], ...] = tuple(errors)


def load_settings[SettingsT: BaseSettings](
    settings_factory: Callable[[], SettingsT] | type[SettingsT],
) -> SettingsT:
    """Call ``settings_factory``, converting validation errors to :class:`SettingsError`."""
    try:
        return settings_factory()
    except ValidationError as exc:
        name = getattr(settings_factory, "__name__", type(settings_factory).__name__)
        errors: list[dict[str, JsonValue]] = json.loads(exc.json(include_url=False))
        problem = build_problem_details(
            ProblemDetailsParams(
                type=f"{PROBLEM_TYPE_BASE}/settings-invalid",
                title="Invalid settings",
                status=500,
                detail="Failed to load configuration",
                instance=f"urn:settings:{name}:invalid",
                extensions={"errors": list(errors), "settings_class": name},
            )
        )
        message = f"Failed to load settings: {exc.error_count()} validation error(s)"
        raise SettingsError(message, problem=problem, errors=errors) from exc


def split_csv(value: object, *, field_name: str) -> tuple[str, ...] | None:
    """Split a comma-separated string, or strip a sequence, into non-empty tokens.

    ``None`` passes through so validators can fall back to their default.

    Raises
    ------
    TypeError
        If ``value`` is neither a string nor a sequence.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple, set)):
        message = f"{field_name} must be a comma-separated string or sequence"
        raise TypeError(message)
    return tuple(token for token in (str(part).strip() for part in value) if token)


class ToolRuntimeSettings(BaseSettings):
    """Execution policy for every subprocess started through ``run_tool``."""

    model_config = SettingsConfigDict(env_prefix="TOOLS_", case_sensitive=False, extra="ignore")

    exec_allowlist: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_EXEC_ALLOWLIST,
        description="Glob patterns (or absolute paths) of executables that may run",
    )
    exec_digests: Annotated[dict[str, str], NoDecode] = Field(
        default_factory=dict,
        description="SHA-256 digests keyed by absolute executable path or basename",
    )
    metrics_enabled: bool = True
    tracing_enabled: bool = True

    @field_validator("exec_allowlist", mode="before")
    @classmethod
    def _parse_allowlist(cls, value: object) -> tuple[str, ...]:
        tokens = split_csv(value, field_name="exec_allowlist")
        return DEFAULT_EXEC_ALLOWLIST if tokens is None else tokens

    @field_validator("exec_digests", mode="before")
    @classmethod
    def _parse_digests(cls, value: object) -> dict[str, str]:
        if isinstance(value, Mapping):
            pairs = [(str(key), str(digest)) for key, digest in value.items()]
        else:
            pairs = []
            for token in split_csv(value, field_name="exec_digests") or ():
                key, sep, digest = token.partition("=")
                if not sep:
                    message = f"exec_digests entry {token!r} is not in 'executable=sha256' form"
                    raise ValueError(message)
                pairs.append((key, digest))
        return {key.strip(): digest.strip().lower() for key, digest in pairs if digest.strip()}

    def is_allowed(self, executable: Path) -> bool:
        """Return ``True`` when ``executable`` matches an allowlist entry.

        Absolute entries match the full path exactly; other entries are
        globs over the basename.
        """
        return any(
            executable.as_posix() == pattern
            if Path(pattern).is_absolute()
            else fnmatch(executable.name, pattern)
            for pattern in self.exec_allowlist
        )

    def expected_digest_for(self, executable: Path) -> str | None:
        """Return the configured digest for ``executable``, by path first then basename."""
        return self.exec_digests.get(executable.as_posix(), self.exec_digests.get(executable.name))


_SETTINGS_CACHE: dict[str, ToolRuntimeSettings] = {}


def get_runtime_settings() -> ToolRuntimeSettings:
    """Return the cached ``TOOLS_*`` settings, loading them on first use."""
    if "default" not in _SETTINGS_CACHE:
        _SETTINGS_CACHE["default"] = load_settings(ToolRuntimeSettings)
    return _SETTINGS_CACHE["default"]


def reset_runtime_settings() -> None:
    """Drop the cached settings so the next lookup re-reads the environment."""
    _SETTINGS_CACHE.clear()
