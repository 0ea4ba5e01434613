from __future__ import annotations

from io import BytesIO
from typing import Any

import fitz
import pytest
from PIL import Image


def png_bytes(width: int, height: int, color: tuple[int, int, int] = (255, 0, 0)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_pdf(pages: list[dict[str, Any]]) -> bytes:
    """Build a PDF in memory.

    Each page dict: {"size": (w, h), "links": [(rect, uri)], "texts": [(point, text, size)],
    "rects": [(rect, rgb)]}; all coordinates are PyMuPDF page coordinates (top-left origin).
    """
    doc = fitz.open()
    for page_def in pages:
        w, h = page_def.get("size", (595, 842))
        page = doc.new_page(width=w, height=h)
        for rect, rgb in page_def.get("rects", []):
            page.draw_rect(fitz.Rect(*rect), color=rgb, fill=rgb)
        for point, text, size in page_def.get("texts", []):
            page.insert_text(fitz.Point(*point), text, fontsize=size)
        for rect, uri in page_def.get("links", []):
            page.insert_link({"kind": fitz.LINK_URI, "from": fitz.Rect(*rect), "uri": uri})
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def tall_png() -> bytes:
    """1600x2000 solid image (already at canonical width)."""
    return png_bytes(1600, 2000)


@pytest.fixture
def two_page_pdf() -> bytes:
    return make_pdf(
        [
            {"size": (400, 300), "rects": [((20, 20, 120, 120), (1, 0, 0))]},
            {
                "size": (400, 300),
                "rects": [((20, 20, 120, 120), (0, 0, 1))],
                "links": [((40, 30, 140, 60), "https://example.com/page2")],
            },
        ]
    )


@pytest.fixture
def structured_pdf() -> bytes:
    """One page: heading text, a filled box, then a linked line of text."""
    return make_pdf(
        [
            {
                "size": (400, 300),
                "texts": [((50, 50), "HELLO WORLD", 12), ((50, 250), "READ MORE", 12)],
                "rects": [((40, 100, 360, 200), (0.8, 0.1, 0.1))],
                "links": [((45, 235, 200, 255), "https://example.com/more")],
            }
        ]
    )
