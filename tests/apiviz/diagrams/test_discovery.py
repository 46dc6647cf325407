"""Tests for apiviz.diagrams.discovery module."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import pytest

from apiviz.diagrams.discovery import discover_documents
from apiviz.diagrams.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


class TestDiscoverDocuments:
    """Tests for discover_documents function."""

    def test_recurses_and_sorts_by_relative_path(
        self, write_documents: Callable[[Mapping[str, str]], Path]
    ) -> None:
        root = write_documents(
            {
                "z.json": "{}",
                "teamB/core/api.yaml": "openapi: 3.0.0",
                "a/b.yml": "openapi: 3.0.0",
                "notes.txt": "ignored",
            }
        )

        documents = discover_documents(root)

        assert [doc.relative_path for doc in documents] == [
            PurePosixPath("a/b.yml"),
            PurePosixPath("teamB/core/api.yaml"),
            PurePosixPath("z.json"),
        ]
        assert [doc.format for doc in documents] == ["yaml", "yaml", "json"]
        assert all(doc.absolute_path.is_absolute() for doc in documents)

    def test_extensions_match_case_insensitively(
        self, write_documents: Callable[[Mapping[str, str]], Path]
    ) -> None:
        root = write_documents({"Upper.YAML": "a: 1", "Mixed.Json": "{}"})

        formats = {doc.relative_path.name: doc.format for doc in discover_documents(root)}

        assert formats == {"Mixed.Json": "json", "Upper.YAML": "yaml"}

    def test_missing_root_raises_configuration_error(self, source_root: Path) -> None:
        with pytest.raises(ConfigurationError, match="Missing source directory") as exc_info:
            discover_documents(source_root)
        assert exc_info.value.problem["source_dir"] == source_root.resolve().as_posix()

    def test_empty_root_names_the_root(self, source_root: Path) -> None:
        (source_root / "nested").mkdir(parents=True)
        (source_root / "nested" / "README.md").write_text("nothing here")

        with pytest.raises(ConfigurationError) as exc_info:
            discover_documents(source_root)

        assert str(source_root.resolve()) in str(exc_info.value)

    def test_file_as_root_is_rejected(self, tmp_path: Path) -> None:
        not_a_dir = tmp_path / "spec.yaml"
        not_a_dir.write_text("a: 1")

        with pytest.raises(ConfigurationError, match="not a directory"):
            discover_documents(not_a_dir)
