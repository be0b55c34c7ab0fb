"""Scanned PDF to searchable PDF through a resumable raster/OCR/merge pipeline."""

__version__ = "0.1.0"

from .errors import (
    ConfigurationError,
    MergeError,
    MissingPagesError,
    OcrError,
    ParseError,
    PipelineError,
    StageError,
    ToolExecutionError,
    UnsafePathError,
    ZeroPageError,
)
from .layout import Document, LevelsAdjustment, WorkLayout
from .pipeline import PipelineResult, PipelineRunner

__all__ = [
    "ConfigurationError",
    "Document",
    "LevelsAdjustment",
    "MergeError",
    "MissingPagesError",
    "OcrError",
    "ParseError",
    "PipelineError",
    "PipelineResult",
    "PipelineRunner",
    "StageError",
    "ToolExecutionError",
    "UnsafePathError",
    "WorkLayout",
    "ZeroPageError",
]
