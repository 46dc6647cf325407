"""OpenAPI → Mermaid → image pipeline."""

from __future__ import annotations

from apiviz.diagrams.config import PipelineSettings, load_pipeline_settings
from apiviz.diagrams.discovery import SourceDocument, discover_documents
from apiviz.diagrams.errors import (
    ArtifactIdentificationError,
    ConfigurationError,
    DiagramPipelineError,
    DocumentParseError,
    ExternalProcessError,
    UnexpectedError,
)
from apiviz.diagrams.generate import CallableTransform, CommandTransform, generate_diagram
from apiviz.diagrams.paths import OutputLocator, locate
from apiviz.diagrams.pipeline import DiagramPipeline, PipelineResult, main
from apiviz.diagrams.render import Renderer, render_diagram

__all__ = [
    "ArtifactIdentificationError",
    "CallableTransform",
    "CommandTransform",
    "ConfigurationError",
    "DiagramPipeline",
    "DiagramPipelineError",
    "DocumentParseError",
    "ExternalProcessError",
    "OutputLocator",
    "PipelineResult",
    "PipelineSettings",
    "Renderer",
    "SourceDocument",
    "UnexpectedError",
    "discover_documents",
    "generate_diagram",
    "load_pipeline_settings",
    "locate",
    "main",
    "render_diagram",
]
