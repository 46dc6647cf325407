"""Tests for apiviz.diagrams.paths module."""

from __future__ import annotations

from pathlib import Path, PurePosixPath

import pytest

from apiviz.diagrams.discovery import SourceDocument
from apiviz.diagrams.errors import ConfigurationError
from apiviz.diagrams.paths import OutputLocator, display_path, ensure_unique, locate, mirror


def _document(relative: str) -> SourceDocument:
    rel = PurePosixPath(relative)
    fmt = "json" if rel.suffix.lower() == ".json" else "yaml"
    return SourceDocument(rel, Path("/src") / relative, fmt)


class TestLocate:
    """Tests for locate function."""

    @pytest.mark.parametrize(
        ("relative", "directory", "base_name"),
        [
            ("a/b.yaml", "a", "b"),
            ("teamB/core/api.yml", "teamB/core", "api"),
            ("petstore.JSON", ".", "petstore"),
            ("v1/pets.v2.yaml", "v1", "pets.v2"),
        ],
    )
    def test_directory_and_base_name(self, relative: str, directory: str, base_name: str) -> None:
        locator = locate(PurePosixPath(relative))
        assert locator == OutputLocator(PurePosixPath(directory), base_name)

    def test_root_documents_map_to_the_root_itself(self, tmp_path: Path) -> None:
        locator = locate(PurePosixPath("petstore.yaml"))
        assert locator.directory_under(tmp_path) == tmp_path
        assert locator.artifact_under(tmp_path, ".mmd") == tmp_path / "petstore.mmd"

    def test_diagram_and_image_paths_are_isomorphic(self, tmp_path: Path) -> None:
        """Both artifacts share the mirrored directory and base name."""
        mmd_root, svg_root = tmp_path / "mmd", tmp_path / "svg"
        for relative in ("a/b.yaml", "x/y/z.json", "root.yml"):
            locator = locate(PurePosixPath(relative))
            diagram = locator.artifact_under(mmd_root, ".mmd")
            image = locator.artifact_under(svg_root, ".svg")

            assert diagram.relative_to(mmd_root).with_suffix("") == image.relative_to(
                svg_root
            ).with_suffix("")
            assert mirror(diagram, mmd_root, svg_root, ".svg") == image


class TestEnsureUnique:
    """Tests for ensure_unique function."""

    def test_same_basename_in_different_directories_do_not_collide(self) -> None:
        index = ensure_unique([_document("teamA/api.yaml"), _document("teamB/api.yaml")])
        assert {locator.directory for locator in index} == {
            PurePosixPath("teamA"),
            PurePosixPath("teamB"),
        }

    def test_same_stem_different_extension_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ensure_unique([_document("a/b.json"), _document("a/b.yaml")])

        message = str(exc_info.value)
        assert "a/b.json" in message
        assert "a/b.yaml" in message
        assert exc_info.value.problem["conflicts_with"] == "a/b.json"


def test_display_path_is_relative_inside_base(tmp_path: Path) -> None:
    assert display_path(tmp_path / "yaml_output" / "mmd" / "a.mmd", tmp_path) == (
        "yaml_output/mmd/a.mmd"
    )
    assert display_path(Path("/elsewhere/a.mmd"), tmp_path) == "/elsewhere/a.mmd"
