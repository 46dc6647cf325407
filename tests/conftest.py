"""Shared pytest fixtures for the apiviz test suite.

This module provides reusable fixtures for:
- Isolating ``APIVIZ_*``/``TOOLS_*`` environment variables between tests
- Building document trees under ``tmp_path``
- Python-scripted stand-ins for the Node transformation and renderer
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Final

import pytest

from apiviz._shared.settings import reset_runtime_settings

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

# Writes ``{output_dir}/{name}.mmd`` from the title of the JSON input.
TRANSFORM_SCRIPT: Final[str] = (
    "import json, pathlib, sys; "
    "src, out, name = sys.argv[1:4]; "
    "doc = json.loads(pathlib.Path(src).read_text()); "
    "pathlib.Path(out, name + '.mmd').write_text("
    "'graph TD' + chr(10) + '  A[' + doc['info']['title'] + ']' + chr(10))"
)

COPY_SCRIPT: Final[str] = "import shutil, sys; shutil.copyfile(sys.argv[1], sys.argv[2])"


def exit_script(status: int) -> str:
    """Return a Python one-liner that reports a failure on stderr and exits with ``status``."""
    return f"import sys; sys.stderr.write('render failed' + chr(10)); sys.exit({status})"


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith(("APIVIZ_", "TOOLS_")):
            monkeypatch.delenv(key, raising=False)
    reset_runtime_settings()
    yield
    reset_runtime_settings()


@pytest.fixture
def source_root(tmp_path: Path) -> Path:
    """Return ``tmp_path / "yaml_source"`` (not yet created)."""
    return tmp_path / "yaml_source"


@pytest.fixture
def write_documents(source_root: Path) -> Callable[[Mapping[str, str]], Path]:
    """Return a factory writing ``{relative_path: content}`` under the source root."""

    def _write(files: Mapping[str, str]) -> Path:
        for relative, content in files.items():
            target = source_root / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return source_root

    return _write


@pytest.fixture
def transform_command() -> tuple[str, ...]:
    """Command template for a Python stand-in of the diagram transformation."""
    return (sys.executable, "-c", TRANSFORM_SCRIPT, "{input}", "{output_dir}", "{name}")


@pytest.fixture
def copy_render_command() -> tuple[str, ...]:
    """Command template for a renderer that copies the diagram to the image path."""
    return (sys.executable, "-c", COPY_SCRIPT, "{input}", "{output}")


@pytest.fixture
def failing_render_command() -> tuple[str, ...]:
    """Command template for a renderer that exits with status 2."""
    return (sys.executable, "-c", exit_script(2), "{input}", "{output}")
