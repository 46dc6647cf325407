"""Tests for apiviz.diagrams.normalize module."""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from pathlib import Path, PurePosixPath

import pytest

from apiviz.diagrams.content_server import ContentServer
from apiviz.diagrams.discovery import SourceDocument
from apiviz.diagrams.errors import DocumentParseError, UnexpectedError
from apiviz.diagrams.normalize import normalized_input, temp_json_path


def _document(path: Path, relative: str) -> SourceDocument:
    fmt = "json" if path.suffix == ".json" else "yaml"
    return SourceDocument(PurePosixPath(relative), path.resolve(), fmt)


@pytest.fixture
def yaml_document(tmp_path: Path) -> SourceDocument:
    path = tmp_path / "src" / "a" / "b.yaml"
    path.parent.mkdir(parents=True)
    path.write_text("openapi: 3.0.0\ninfo:\n  title: Pets\n  version: '1'\npaths: {}\n")
    return _document(path, "a/b.yaml")


@pytest.fixture
def json_document(tmp_path: Path) -> SourceDocument:
    path = tmp_path / "src" / "c.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text('{"openapi": "3.0.0"}')
    return _document(path, "c.json")


class TestTempJsonPath:
    """Tests for temp_json_path function."""

    def test_name_is_deterministic_per_source(
        self, yaml_document: SourceDocument, json_document: SourceDocument, tmp_path: Path
    ) -> None:
        first = temp_json_path(yaml_document, tmp_path)
        assert first == temp_json_path(yaml_document, tmp_path)
        assert first != temp_json_path(json_document, tmp_path)
        assert first.suffix == ".json"
        assert len(first.stem) == 64


class TestNormalizedInput:
    """Tests for the normalized_input context manager."""

    def test_json_document_is_passed_through(
        self, json_document: SourceDocument, tmp_path: Path
    ) -> None:
        with normalized_input(json_document, temp_dir=tmp_path / "tmp") as source:
            assert source.local_path == json_document.absolute_path
            assert source.temporary is False
            assert not source.is_url
        assert json_document.absolute_path.exists()

    def test_yaml_is_converted_and_removed_on_success(
        self, yaml_document: SourceDocument, tmp_path: Path
    ) -> None:
        with normalized_input(yaml_document, temp_dir=tmp_path / "tmp") as source:
            assert source.temporary is True
            payload = json.loads(source.local_path.read_text(encoding="utf-8"))
            assert payload["info"]["title"] == "Pets"
            temp_file = source.local_path

        assert not temp_file.exists()

    def test_yaml_temp_file_removed_when_body_raises(
        self, yaml_document: SourceDocument, tmp_path: Path
    ) -> None:
        temp_file = temp_json_path(yaml_document, tmp_path / "tmp")
        message = "transformation exploded"
        with (
            pytest.raises(RuntimeError, match=message),
            normalized_input(yaml_document, temp_dir=tmp_path / "tmp"),
        ):
            assert temp_file.exists()
            raise RuntimeError(message)

        assert not temp_file.exists()

    def test_cleanup_failure_is_logged_not_raised(
        self,
        yaml_document: SourceDocument,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        original_unlink = Path.unlink

        def _refuse(self: Path, *, missing_ok: bool = False) -> None:
            if self.suffix == ".json":
                message = "read-only filesystem"
                raise PermissionError(message)
            original_unlink(self, missing_ok=missing_ok)

        with monkeypatch.context() as patch:
            patch.setattr(Path, "unlink", _refuse)
            with normalized_input(yaml_document, temp_dir=tmp_path / "tmp") as source:
                temp_file = source.local_path

        assert any("Failed to remove temporary JSON" in r.getMessage() for r in caplog.records)
        temp_file.unlink()

    def test_malformed_yaml_raises_parse_error(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("openapi: [unclosed\n")
        document = _document(path, "broken.yaml")

        with (
            pytest.raises(DocumentParseError, match="broken.yaml") as exc_info,
            normalized_input(document, temp_dir=tmp_path / "tmp"),
        ):
            pass

        assert exc_info.value.document == "broken.yaml"
        assert not temp_json_path(document, tmp_path / "tmp").exists()

    def test_url_kind_requires_server(self, json_document: SourceDocument) -> None:
        with pytest.raises(UnexpectedError, match="content server"), normalized_input(
            json_document, kind="url"
        ):
            pass

    def test_url_kind_serves_converted_json(
        self, yaml_document: SourceDocument, tmp_path: Path
    ) -> None:
        with ContentServer() as server:
            with normalized_input(
                yaml_document, kind="url", temp_dir=tmp_path / "tmp", server=server
            ) as source:
                assert source.is_url
                with urllib.request.urlopen(source.location, timeout=5) as response:  # noqa: S310
                    payload = json.loads(response.read())
                url = source.location

            assert payload["info"]["title"] == "Pets"
            with pytest.raises(urllib.error.HTTPError) as exc_info:
                urllib.request.urlopen(url, timeout=5)  # noqa: S310
            assert exc_info.value.code == 404
