"""Present each document to the transformation in the form it accepts.

JSON documents are handed over as-is. YAML documents are converted to a
temporary JSON file whose name is derived from the source path, so concurrent
documents never share a file and reruns reuse the same name. The temporary
file is removed when the scope exits, whether or not the body raised.
"""

from __future__ import annotations

import hashlib
import json
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from apiviz._shared.logging import get_logger, with_fields
from apiviz.diagrams.errors import DocumentParseError, UnexpectedError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from apiviz.diagrams.config import TransformInputKind
    from apiviz.diagrams.content_server import ContentServer
    from apiviz.diagrams.discovery import SourceDocument

__all__ = ["TransformInput", "default_temp_dir", "normalized_input", "temp_json_path"]

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TransformInput:
    """What the transformation consumes for one document.

    Attributes
    ----------
    location : str
        Local file path or ``http://`` URL.
    local_path : Path
        File on disk backing ``location``.
    temporary : bool
        ``True`` when ``local_path`` is a JSON file owned by the normalizer.
    """

    location: str
    local_path: Path
    temporary: bool

    @property
    def is_url(self) -> bool:
        return self.location.startswith(("http://", "https://"))


def default_temp_dir() -> Path:
    """Return ``<system temp>/apiviz``."""
    return Path(tempfile.gettempdir()) / "apiviz"


def temp_json_path(document: SourceDocument, temp_dir: Path | None = None) -> Path:
    """Return the deterministic temporary JSON path for ``document``.

    The name is the SHA-256 of the resolved source path.
    """
    digest = hashlib.sha256(document.absolute_path.as_posix().encode("utf-8")).hexdigest()
    return (temp_dir if temp_dir is not None else default_temp_dir()) / f"{digest}.json"


def _write_json_copy(document: SourceDocument, target: Path) -> None:
    try:
        raw = document.absolute_path.read_text(encoding="utf-8")
    except OSError as exc:
        message = f"Failed to read {document.display_name}: {exc}"
        raise UnexpectedError(message, document=document.display_name) from exc
    try:
        payload = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        message = f"Failed to parse {document.display_name}: {exc}"
        raise DocumentParseError(message, document=document.display_name) from exc
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    except OSError as exc:
        message = f"Failed to write temporary JSON for {document.display_name}: {exc}"
        raise UnexpectedError(message, document=document.display_name) from exc


def _discard(path: Path, document: SourceDocument) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        LOGGER.warning(
            "Failed to remove temporary JSON",
            extra={
                "operation": "normalize",
                "document": document.display_name,
                "path": path.as_posix(),
                "error": str(exc),
            },
        )


@contextmanager
def normalized_input(
    document: SourceDocument,
    *,
    kind: TransformInputKind = "path",
    temp_dir: Path | None = None,
    server: ContentServer | None = None,
) -> Iterator[TransformInput]:
    """Yield the transformation input for ``document`` and clean up afterwards.

    Parameters
    ----------
    document : SourceDocument
        Document to present.
    kind : TransformInputKind, optional
        ``"path"`` yields a local file path; ``"url"`` registers the file with
        ``server`` and yields its URL. Default is ``"path"``.
    temp_dir : Path | None, optional
        Directory for temporary JSON. Default is :func:`default_temp_dir`.
    server : ContentServer | None, optional
        Running content server, required when ``kind`` is ``"url"``.

    Yields
    ------
    TransformInput
        Input handed to the transformation.

    Raises
    ------
    DocumentParseError
        If a YAML document cannot be decoded.
    UnexpectedError
        If the temporary JSON cannot be written, or ``kind`` is ``"url"``
        without a server.

    Notes
    -----
    Failure to remove the temporary file is logged and never raised.
    """
    logger = with_fields(LOGGER, document=document.display_name, operation="normalize")
    if kind == "url" and server is None:
        message = "URL input requested without a running content server"
        raise UnexpectedError(message, document=document.display_name)

    temporary = document.format == "yaml"
    local_path = temp_json_path(document, temp_dir) if temporary else document.absolute_path
    url: str | None = None
    try:
        if temporary:
            _write_json_copy(document, local_path)
            logger.debug("Wrote temporary JSON", extra={"path": local_path.as_posix()})
        if kind == "url" and server is not None:
            url = server.register(local_path)
            location = url
        else:
            location = str(local_path)
        yield TransformInput(location=location, local_path=local_path, temporary=temporary)
    finally:
        if url is not None and server is not None:
            server.unregister(url)
        if temporary:
            _discard(local_path, document)
