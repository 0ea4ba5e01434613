"""Newsletter block engine.

Converts uploaded PDFs and images into ordered newsletter blocks
(page strips, text regions, page images with text layers) whose link
rectangles survive every resize, merge and slice, and serializes the
blocks into email-safe HTML.

Persistence of documents, the HTTP layer and the editor UI are out of scope.
"""

from __future__ import annotations

from .errors import (
    ImageDecodeError,
    PageRenderError,
    PdfParseError,
    PipelineCancelled,
    PipelineError,
    PipelineTimeoutError,
    RegionExtractionError,
    UnsupportedFormatError,
)
from .html_generator import generate_html
from .processor import DocumentProcessor, ProcessResult, process_file

__all__ = [
    "__version__",
    "DocumentProcessor",
    "ProcessResult",
    "process_file",
    "generate_html",
    "PipelineError",
    "UnsupportedFormatError",
    "PdfParseError",
    "ImageDecodeError",
    "PageRenderError",
    "RegionExtractionError",
    "PipelineCancelled",
    "PipelineTimeoutError",
]

__version__ = "0.1.0"
