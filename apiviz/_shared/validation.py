"""Helpers for validating and normalising CLI path inputs."""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "ValidationError",
    "require_file",
    "resolve_path",
]


class ValidationError(ValueError):
    """Raised when user-provided inputs fail validation."""


def resolve_path(
    value: str | Path,
    *,
    base: Path | None = None,
    strict: bool = False,
) -> Path:
    """Resolve ``value`` relative to ``base`` (if provided) into an absolute path.

    Parameters
    ----------
    value : str | Path
        Path to resolve; ``~`` is expanded.
    base : Path | None, optional
        Anchor for relative paths. Default is the current working directory.
    strict : bool, optional
        Require the path to exist. Default is False.

    Returns
    -------
    Path
        Resolved absolute path.
    """
    candidate = Path(value).expanduser()
    if base is not None and not candidate.is_absolute():
        candidate = base / candidate
    return candidate.resolve(strict=strict)


def require_file(
    value: str | Path,
    *,
    base: Path | None = None,
    description: str = "file",
) -> Path:
    """Return ``value`` as an absolute path to an existing regular file.

    Raises
    ------
    ValidationError
        If the path does not exist or is not a file.
    """
    candidate = resolve_path(value, base=base)
    if not candidate.exists():
        message = f"{description.capitalize()} '{candidate}' does not exist"
        raise ValidationError(message)
    if not candidate.is_file():
        message = f"{description.capitalize()} '{candidate}' must be a file"
        raise ValidationError(message)
    return candidate

