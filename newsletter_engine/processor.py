from __future__ import annotations

import logging
import mimetypes
import threading
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Callable

from PIL import Image

from .checkpoint import Checkpoint
from .config import EngineConfig, default_config
from .errors import ImageDecodeError, PipelineError, UnsupportedFormatError
from .merger import merge_pages
from .rasterizer import PdfBackend, Rasterizer, default_backend
from .segmenter import RegionSegmenter
from .slicer import CANONICAL_WIDTH, links_for_slice, slice_image
from .surface import PilSurfaceFactory, SurfaceFactory
from .text_layer import build_text_layer
from .types import Block, ImageBlock, PdfBlock, RasterPage, TextBlock, block_to_dict
from .utils import utc_now_iso

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
MODES = ("slice", "structure", "pages")


def normalize_mime(mime_type: str | None) -> str:
    return (mime_type or "").split(";", 1)[0].strip().lower()


@dataclass
class ProcessResult:
    blocks: list[Block]
    errors: list[dict[str, Any]] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"blocks": [block_to_dict(b) for b in self.blocks]}


class DocumentProcessor:
    """Turn an uploaded PDF or image into an ordered list of blocks.

    PDF strategies (``mode``):
    - slice: rasterize, stack pages, cut into strips at canonical width
    - structure: rasterize with text, split each page into text and image blocks
    - pages: one PdfBlock per page with a transparent text layer

    Each call is all-or-nothing: either every block is returned or a
    PipelineError is raised. Page- and region-level failures are recovered and
    reported in ``ProcessResult.errors``.
    """

    def __init__(
        self,
        cfg: EngineConfig | None = None,
        *,
        backend: PdfBackend | None = None,
        surfaces: SurfaceFactory | None = None,
    ) -> None:
        self.cfg = cfg or default_config()
        self.backend = backend or default_backend()
        self.surfaces = surfaces or PilSurfaceFactory()

    def _encode(self, image: Image.Image) -> bytes:
        return self.surfaces.wrap(image).encode("PNG")

    @property
    def canonical_width(self) -> int:
        return int(self.cfg.slice.get("canonical_width", CANONICAL_WIDTH))

    def process(
        self,
        data: bytes,
        mime_type: str,
        slice_height: int = 0,
        *,
        mode: str = "slice",
        cancel_event: threading.Event | None = None,
    ) -> ProcessResult:
        mime = normalize_mime(mime_type)
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode} (expected one of {', '.join(MODES)})")

        errors: list[dict[str, Any]] = []
        checkpoint = Checkpoint(
            cancel_event=cancel_event,
            base_s=float(self.cfg.limits.get("timeout_base_s", 0)),
            per_page_s=float(self.cfg.limits.get("timeout_per_page_s", 0)),
        )
        metrics: dict[str, Any] = {
            "created_at": utc_now_iso(),
            "mime_type": mime,
            "mode": mode if mime == PDF_MIME else "slice",
            "slice_height": int(slice_height),
            "pages_total": 0,
            "blocks_total": 0,
            "recovered_errors": 0,
        }

        logger.info("Processing %s (%d bytes, mode=%s, slice_height=%d)", mime or "?", len(data), mode, slice_height)
        try:
            if mime == PDF_MIME:
                if mode == "structure":
                    blocks = self._pdf_structure(data, errors, metrics, checkpoint)
                elif mode == "pages":
                    blocks = self._pdf_pages(data, errors, metrics, checkpoint)
                else:
                    blocks = self._pdf_slice(data, slice_height, errors, metrics, checkpoint)
            elif mime.startswith("image/"):
                blocks = self._image_slice(data, slice_height, metrics, checkpoint)
            else:
                raise UnsupportedFormatError(mime or "<none>")
        except PipelineError as e:
            logger.error("Pipeline failed at stage %s: %s", e.stage, e.args[0])
            raise
        except Exception as e:
            logger.exception("Pipeline failed")
            raise PipelineError(f"{type(e).__name__}: {e}", stage="process") from e

        metrics["blocks_total"] = len(blocks)
        metrics["recovered_errors"] = len(errors)
        metrics["elapsed_s"] = round(checkpoint.elapsed(), 3)
        logger.info("Produced %d block(s) with %d recovered error(s)", len(blocks), len(errors))
        return ProcessResult(blocks=blocks, errors=errors, metrics=metrics)

    # ---- stages -----------------------------------------------------------

    @staticmethod
    def _run_stage(stage: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except PipelineError:
            raise
        except Exception as e:
            logger.exception("Unexpected failure in stage %s", stage)
            raise PipelineError(f"{type(e).__name__}: {e}", stage=stage) from e

    @staticmethod
    def _recorder(errors: list[dict[str, Any]], page_id: str | None = None) -> Callable[[PipelineError], None]:
        def record(err: PipelineError) -> None:
            pid = page_id
            if pid is None and getattr(err, "page_index", None) is not None:
                pid = f"page_{err.page_index + 1:03d}"
            errors.append({"page_id": pid, "stage": err.stage, "message": str(err.args[0])})

        return record

    def _rasterize(
        self,
        data: bytes,
        *,
        scale: float,
        with_text: bool,
        errors: list[dict[str, Any]],
        metrics: dict[str, Any],
        checkpoint: Checkpoint,
    ) -> list[RasterPage]:
        rasterizer = Rasterizer(scale=scale, backend=self.backend, on_error=self._recorder(errors))
        pages = self._run_stage("rasterize", rasterizer.rasterize, data, with_text=with_text, checkpoint=checkpoint)
        metrics["pages_total"] = len(pages)
        return pages

    def _slices_to_blocks(self, page: RasterPage, slice_height: int) -> list[Block]:
        slices = self._run_stage(
            "slice", slice_image, page.bitmap, slice_height, page.links, width=self.canonical_width
        )
        return [
            ImageBlock(
                buffer=self._encode(s.bitmap),
                width=s.width,
                height=s.height,
                links=s.links,
            )
            for s in slices
        ]

    def _pdf_slice(
        self,
        data: bytes,
        slice_height: int,
        errors: list[dict[str, Any]],
        metrics: dict[str, Any],
        checkpoint: Checkpoint,
    ) -> list[Block]:
        scale = float(self.cfg.raster.get("scale", 2.0))
        pages = self._rasterize(data, scale=scale, with_text=False, errors=errors, metrics=metrics, checkpoint=checkpoint)
        checkpoint.check("merge")
        composite = self._run_stage("merge", merge_pages, pages, self.surfaces) if len(pages) > 1 else pages[0]
        del pages
        checkpoint.check("slice")
        return self._slices_to_blocks(composite, slice_height)

    def _pdf_structure(
        self,
        data: bytes,
        errors: list[dict[str, Any]],
        metrics: dict[str, Any],
        checkpoint: Checkpoint,
    ) -> list[Block]:
        scale = float(self.cfg.raster.get("structure_scale", 1.5))
        pages = self._rasterize(data, scale=scale, with_text=True, errors=errors, metrics=metrics, checkpoint=checkpoint)

        blocks: list[Block] = []
        for page in pages:
            checkpoint.check("segment")
            segmenter = RegionSegmenter(segment_cfg=self.cfg.segment, on_error=self._recorder(errors, page.page_id))
            for extracted in self._run_stage("segment", segmenter.segment, page):
                if extracted.type == "text":
                    blocks.append(TextBlock(content=str(extracted.content)))
                    continue
                image: Image.Image = extracted.content  # type: ignore[assignment]
                blocks.append(
                    ImageBlock(
                        buffer=self._encode(image),
                        width=image.width,
                        height=image.height,
                        links=tuple(links_for_slice(page.links, extracted.y, extracted.height)),
                    )
                )
        return blocks

    def _pdf_pages(
        self,
        data: bytes,
        errors: list[dict[str, Any]],
        metrics: dict[str, Any],
        checkpoint: Checkpoint,
    ) -> list[Block]:
        scale = float(self.cfg.raster.get("scale", 2.0))
        pages = self._rasterize(data, scale=scale, with_text=True, errors=errors, metrics=metrics, checkpoint=checkpoint)

        blocks: list[Block] = []
        for page in pages:
            checkpoint.check("text_layer")
            content = None
            if page.text_items and page.viewport is not None:
                content = build_text_layer(page.text_items, page.viewport)
            blocks.append(
                PdfBlock(
                    buffer=self._encode(page.bitmap),
                    content=content,
                    width=page.width,
                    height=page.height,
                    links=page.links,
                )
            )
        return blocks

    def _decode_image(self, data: bytes) -> Image.Image:
        try:
            img = Image.open(BytesIO(data))
            img.load()
        except Exception as e:
            raise ImageDecodeError(f"cannot_decode_image: {e}") from e
        return self.surfaces.wrap(img).to_image()

    def _image_slice(
        self,
        data: bytes,
        slice_height: int,
        metrics: dict[str, Any],
        checkpoint: Checkpoint,
    ) -> list[Block]:
        checkpoint.begin(1)
        img = self._decode_image(data)
        metrics["pages_total"] = 1
        page = RasterPage(bitmap=img, width=img.width, height=img.height)
        checkpoint.check("slice")
        return self._slices_to_blocks(page, slice_height)


def guess_mime(path: str | Path) -> str:
    mime, _ = mimetypes.guess_type(str(path))
    return mime or "application/octet-stream"


def process_file(
    path: str | Path,
    mime_type: str | None = None,
    slice_height: int = 0,
    *,
    mode: str = "slice",
    cfg: EngineConfig | None = None,
    delete_input: bool = False,
    cancel_event: threading.Event | None = None,
) -> ProcessResult:
    """Process a file on disk; with ``delete_input`` the file is removed on every exit path."""
    p = Path(path)
    try:
        data = p.read_bytes()
        return DocumentProcessor(cfg).process(
            data,
            mime_type or guess_mime(p),
            slice_height,
            mode=mode,
            cancel_event=cancel_event,
        )
    finally:
        if delete_input:
            try:
                p.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not delete input %s: %s", p, e)
