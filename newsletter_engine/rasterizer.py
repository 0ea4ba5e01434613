from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Callable

from PIL import Image

from .checkpoint import Checkpoint
from .errors import PageRenderError, PdfParseError, PipelineError
from .types import LinkInfo, RasterPage, TextItem, Viewport

logger = logging.getLogger(__name__)

ErrorHook = Callable[[PipelineError], None]


class PdfBackend:
    """Lazily imported PyMuPDF with one-time global setup.

    ``initialize`` is safe to call any number of times from any thread.
    """

    def __init__(self) -> None:
        self._fitz: Any = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._fitz is not None

    def initialize(self) -> Any:
        if self._fitz is not None:
            return self._fitz
        with self._lock:
            if self._fitz is None:
                try:
                    import fitz  # PyMuPDF
                except Exception as e:  # pragma: no cover
                    raise RuntimeError("PyMuPDF is required for PDF input. Install pymupdf.") from e
                # MuPDF prints recoverable syntax warnings to stderr; they are collected and logged per document.
                fitz.TOOLS.mupdf_display_errors(False)
                fitz.TOOLS.mupdf_display_warnings(False)
                self._fitz = fitz
                logger.debug("PyMuPDF %s initialized", getattr(fitz, "VersionBind", "?"))
        return self._fitz


_default_backend: PdfBackend | None = None
_default_lock = threading.Lock()


def default_backend() -> PdfBackend:
    global _default_backend
    with _default_lock:
        if _default_backend is None:
            _default_backend = PdfBackend()
        return _default_backend


def _parse_pdf_array(value: str) -> list[float]:
    return [float(v) for v in value.strip().strip("[]").split()]


@dataclass
class Rasterizer:
    scale: float = 2.0
    backend: PdfBackend = field(default_factory=default_backend)
    on_error: ErrorHook | None = None

    def rasterize(
        self,
        pdf_bytes: bytes,
        *,
        with_text: bool = False,
        checkpoint: Checkpoint | None = None,
    ) -> list[RasterPage]:
        """Render every page at ``scale`` and extract its URI links in pixel space.

        A page that fails to render is skipped; a page whose links or text fail
        to extract is kept with none. Raises PdfParseError when the document
        cannot be opened or no page renders.
        """
        fitz = self.backend.initialize()
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except Exception as e:
            raise PdfParseError(f"cannot_open_pdf: {e}") from e

        pages: list[RasterPage] = []
        with doc:
            if doc.needs_pass:
                raise PdfParseError("pdf_is_encrypted")
            page_count = doc.page_count
            if page_count == 0:
                raise PdfParseError("pdf_has_no_pages")
            if checkpoint is not None:
                checkpoint.begin(page_count)

            logger.info("Rasterizing %d page(s) at scale %.2f", page_count, self.scale)
            for i in range(page_count):
                if checkpoint is not None:
                    checkpoint.check("rasterize")
                try:
                    pages.append(self._render_page(doc, i, with_text=with_text))
                except Exception as e:
                    self._report(PageRenderError(i, str(e)))

            mupdf_warnings = fitz.TOOLS.mupdf_warnings()
            if mupdf_warnings:
                logger.debug("MuPDF warnings: %s", mupdf_warnings)

        if not pages:
            raise PdfParseError(f"all {page_count} page(s) failed to render")
        return pages

    def _report(self, err: PipelineError) -> None:
        logger.warning("%s", err)
        if self.on_error is not None:
            self.on_error(err)

    def page_matrix(self, page: Any) -> Any:
        """PDF space to rotated page space (the frame of ``page.rect`` and ``get_links``).

        ``page.transformation_matrix`` drops the CropBox origin on rotated pages,
        so the flip is anchored at the CropBox top-left here and followed by the
        CropBox-relative ``rotation_matrix``.
        """
        fitz = self.backend.initialize()
        cb = page.cropbox
        top = page.mediabox.y1 - cb.y0  # CropBox top edge in PDF space
        return fitz.Matrix(1, 0, 0, -1, -cb.x0, top) * page.rotation_matrix

    def _viewport(self, page: Any, pix: Any) -> Viewport:
        fitz = self.backend.initialize()
        m = self.page_matrix(page) * fitz.Matrix(self.scale, self.scale)
        # Pixel (0, 0) is the top-left of the pixmap's integer bbox.
        m = m * fitz.Matrix(1, 0, 0, 1, -pix.irect.x0, -pix.irect.y0)
        width, height = pix.width, pix.height
        return Viewport(
            matrix=(m.a, m.b, m.c, m.d, m.e, m.f),
            scale=self.scale,
            width=width,
            height=height,
        )

    def _render_page(self, doc: Any, page_index: int, *, with_text: bool) -> RasterPage:
        fitz = self.backend.initialize()
        page = doc.load_page(page_index)

        pix = page.get_pixmap(matrix=fitz.Matrix(self.scale, self.scale), alpha=False)
        img = Image.open(BytesIO(pix.tobytes("png"))).convert("RGB")
        viewport = self._viewport(page, pix)
        del pix

        links: list[LinkInfo] = []
        try:
            links = self.extract_links(doc, page, viewport, page_index)
        except Exception as e:
            self._report(PageRenderError(page_index, f"link_extraction_failed: {e}"))

        text_items: list[TextItem] = []
        if with_text:
            try:
                text_items = self.extract_text_items(page)
            except Exception as e:
                self._report(PageRenderError(page_index, f"text_extraction_failed: {e}"))

        logger.debug(
            "Page %d rendered: %dx%d, %d link(s), %d text item(s)",
            page_index + 1, img.width, img.height, len(links), len(text_items),
        )
        return RasterPage(
            bitmap=img,
            width=img.width,
            height=img.height,
            links=tuple(links),
            page_index=page_index,
            viewport=viewport,
            text_items=tuple(text_items),
        )

    def _pdf_rect(self, doc: Any, page: Any, link: dict[str, Any]) -> tuple[float, float, float, float]:
        """The annotation's native /Rect (PDF space, bottom-left origin)."""
        xref = int(link.get("xref") or 0)
        if xref > 0:
            kind, value = doc.xref_get_key(xref, "Rect")
            if kind == "array":
                nums = _parse_pdf_array(value)
                if len(nums) == 4:
                    return nums[0], nums[1], nums[2], nums[3]
        r = link["from"] * ~self.page_matrix(page)
        return r.x0, r.y0, r.x1, r.y1

    def extract_links(self, doc: Any, page: Any, viewport: Viewport, page_index: int) -> list[LinkInfo]:
        fitz = self.backend.initialize()
        out: list[LinkInfo] = []
        for link in page.get_links():
            if link.get("kind") != fitz.LINK_URI:
                continue
            uri = (link.get("uri") or "").strip()
            if not uri:
                continue
            x1, y1, x2, y2 = self._pdf_rect(doc, page, link)
            r = viewport.convert_rect(x1, y1, x2, y2)
            out.append(LinkInfo(url=uri, x=r.x, y=r.y, width=r.width, height=r.height, page_index=page_index))
        return out

    def extract_text_items(self, page: Any) -> list[TextItem]:
        """Text spans in PDF space, anchored at their baseline origin."""
        fitz = self.backend.initialize()
        to_pdf = ~self.page_matrix(page)
        items: list[TextItem] = []
        data = page.get_text("dict")
        for block in data.get("blocks", []):
            if block.get("type") != 0:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text") or ""
                    if not text.strip():
                        continue
                    ox, oy = span["origin"]
                    origin = fitz.Point(ox, oy) * to_pdf
                    x0, _, x1, _ = span["bbox"]
                    items.append(
                        TextItem(
                            text=text,
                            x=float(origin.x),
                            y=float(origin.y),
                            width=float(x1 - x0),
                            font_size=float(span.get("size") or 0.0),
                        )
                    )
        return items
