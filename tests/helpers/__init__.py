"""Shared test helpers for the apiviz test suite."""

from __future__ import annotations

from tests.helpers.documents import MINIMAL_OPENAPI_JSON, MINIMAL_OPENAPI_YAML

__all__ = ["MINIMAL_OPENAPI_JSON", "MINIMAL_OPENAPI_YAML"]
