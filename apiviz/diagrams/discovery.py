"""Locate API-description documents under the source root."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Final, Literal

from apiviz._shared.logging import get_logger
from apiviz.diagrams.errors import ConfigurationError

__all__ = [
    "DOCUMENT_SUFFIXES",
    "DocumentFormat",
    "SourceDocument",
    "discover_documents",
]

type DocumentFormat = Literal["yaml", "json"]

DOCUMENT_SUFFIXES: Final[dict[str, DocumentFormat]] = {
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
}

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SourceDocument:
    """A document found under the source root.

    Attributes
    ----------
    relative_path : PurePosixPath
        Location relative to the source root, always with forward slashes.
    absolute_path : Path
        Resolved location on disk.
    format : DocumentFormat
        ``"yaml"`` or ``"json"``, inferred from the extension.
    """

    relative_path: PurePosixPath
    absolute_path: Path
    format: DocumentFormat

    @property
    def display_name(self) -> str:
        """Relative path as shown in logs and error messages."""
        return self.relative_path.as_posix()


def _document_format(path: Path) -> DocumentFormat | None:
    return DOCUMENT_SUFFIXES.get(path.suffix.lower())


def discover_documents(source_root: Path) -> list[SourceDocument]:
    """Return every document under ``source_root`` ordered by relative path.

    Extensions are matched case-insensitively. The walk recurses into every
    subdirectory.

    Parameters
    ----------
    source_root : Path
        Directory to search.

    Returns
    -------
    list[SourceDocument]
        Documents sorted by their relative POSIX path.

    Raises
    ------
    ConfigurationError
        If ``source_root`` is missing or not a directory, or holds no documents.
    """
    root = source_root.resolve()
    if not root.exists():
        message = f"Missing source directory: {root}"
        raise ConfigurationError(message, extensions={"source_dir": root.as_posix()})
    if not root.is_dir():
        message = f"Source path is not a directory: {root}"
        raise ConfigurationError(message, extensions={"source_dir": root.as_posix()})

    documents: list[SourceDocument] = []
    for candidate in root.rglob("*"):
        if not candidate.is_file():
            continue
        fmt = _document_format(candidate)
        if fmt is None:
            continue
        relative = PurePosixPath(candidate.relative_to(root).as_posix())
        documents.append(SourceDocument(relative, candidate.resolve(), fmt))

    if not documents:
        message = f"No documents found under {root}"
        raise ConfigurationError(message, extensions={"source_dir": root.as_posix()})

    documents.sort(key=lambda doc: doc.relative_path.as_posix())
    LOGGER.info(
        "Discovered documents",
        extra={"operation": "discover", "source_dir": root.as_posix(), "count": len(documents)},
    )
    return documents
