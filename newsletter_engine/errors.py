from __future__ import annotations


class PipelineError(Exception):
    """Document-level failure; carries the pipeline stage it was raised from."""

    def __init__(self, message: str, stage: str = "pipeline") -> None:
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {self.args[0]}"


class UnsupportedFormatError(PipelineError):
    def __init__(self, mime_type: str) -> None:
        super().__init__(f"unsupported_mime_type: {mime_type}", stage="dispatch")
        self.mime_type = mime_type


class PdfParseError(PipelineError):
    def __init__(self, message: str) -> None:
        super().__init__(message, stage="rasterize")


class ImageDecodeError(PipelineError):
    def __init__(self, message: str) -> None:
        super().__init__(message, stage="decode")


class PageRenderError(PipelineError):
    """Single-page failure. Recovered by the rasterizer, never propagated."""

    def __init__(self, page_index: int, message: str) -> None:
        super().__init__(f"page {page_index + 1}: {message}", stage="render_page")
        self.page_index = page_index


class RegionExtractionError(PipelineError):
    """Single gap/region failure. Recovered by the segmenter, never propagated."""

    def __init__(self, y: float, height: float, message: str) -> None:
        super().__init__(f"region y={y:.1f} h={height:.1f}: {message}", stage="segment")
        self.y = y
        self.height = height


class PipelineCancelled(PipelineError):
    def __init__(self, stage: str) -> None:
        super().__init__("cancelled", stage=stage)


class PipelineTimeoutError(PipelineError, TimeoutError):
    def __init__(self, stage: str, budget_s: float) -> None:
        super().__init__(f"timeout after {budget_s:.1f}s", stage=stage)
        self.budget_s = budget_s
