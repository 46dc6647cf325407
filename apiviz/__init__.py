"""apiviz: batch conversion of OpenAPI documents into Mermaid diagrams and images."""

from __future__ import annotations

__version__ = "0.1.0"
