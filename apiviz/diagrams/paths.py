"""Deterministic mapping from source documents to output locations.

A document's relative directory is mirrored verbatim under each output root
and its base name is the file name with the document extension removed. The
same locator serves the diagram and image trees.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from apiviz.diagrams.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from apiviz.diagrams.discovery import SourceDocument

__all__ = ["OutputLocator", "display_path", "ensure_unique", "locate", "mirror"]


@dataclass(frozen=True, slots=True)
class OutputLocator:
    """Where a document's artifacts live relative to an output root.

    Attributes
    ----------
    directory : PurePosixPath
        Mirrored directory; ``PurePosixPath(".")`` for documents at the root.
    base_name : str
        Artifact file name without extension.
    """

    directory: PurePosixPath
    base_name: str

    def directory_under(self, root: Path) -> Path:
        """Return the mirrored directory beneath ``root``."""
        if self.directory == PurePosixPath("."):
            return root
        return root.joinpath(*self.directory.parts)

    def artifact_under(self, root: Path, suffix: str) -> Path:
        """Return the artifact path beneath ``root`` with ``suffix`` appended."""
        return self.directory_under(root) / f"{self.base_name}{suffix}"


def locate(relative_path: PurePosixPath) -> OutputLocator:
    """Map a document's relative path to its :class:`OutputLocator`.

    Examples
    --------
    >>> locate(PurePosixPath("teamB/core/api.yaml"))
    OutputLocator(directory=PurePosixPath('teamB/core'), base_name='api')
    >>> locate(PurePosixPath("petstore.JSON")).directory
    PurePosixPath('.')
    """
    return OutputLocator(directory=relative_path.parent, base_name=relative_path.stem)


def mirror(artifact: Path, from_root: Path, to_root: Path, suffix: str) -> Path:
    """Derive the slot under ``to_root`` that mirrors ``artifact`` under ``from_root``.

    Only the artifact path is consulted, never the source document.

    Raises
    ------
    ValueError
        If ``artifact`` does not live under ``from_root``.
    """
    relative = artifact.relative_to(from_root)
    return (to_root / relative).with_suffix(suffix)


def ensure_unique(documents: Iterable[SourceDocument]) -> dict[OutputLocator, SourceDocument]:
    """Return a locator index, rejecting documents that would share artifacts.

    Raises
    ------
    ConfigurationError
        If two documents map to the same locator (e.g. ``a/b.yaml`` and ``a/b.json``).
    """
    index: dict[OutputLocator, SourceDocument] = {}
    for document in documents:
        locator = locate(document.relative_path)
        existing = index.get(locator)
        if existing is not None:
            message = (
                f"Documents {existing.display_name} and {document.display_name} "
                f"would both produce {locator.artifact_under(Path(), '').as_posix()}"
            )
            raise ConfigurationError(
                message,
                document=document.display_name,
                extensions={"conflicts_with": existing.display_name},
            )
        index[locator] = document
    return index


def display_path(path: Path, base: Path) -> str:
    """Return ``path`` relative to ``base`` in POSIX form, or absolute when outside it."""
    try:
        return path.relative_to(base).as_posix()
    except ValueError:
        return path.as_posix()
