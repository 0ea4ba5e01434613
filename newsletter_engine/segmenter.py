from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any, Callable, Sequence

import numpy as np
from PIL import Image

from .errors import PipelineError, RegionExtractionError
from .types import ExtractedBlock, LinkInfo, RasterPage, TextItem, Viewport
from .utils import escape_html, is_valid_url

logger = logging.getLogger(__name__)

LINE_STYLE = "margin: 0; line-height: 1.4;"
ANCHOR_STYLE = "color: blue; text-decoration: underline;"


@dataclass
class PlacedText:
    """A text item projected into page pixel space."""

    html: str
    raw: str
    x: float
    top: float
    bottom: float
    width: float

    @property
    def height(self) -> float:
        return self.bottom - self.top


@dataclass
class TextRegion:
    top: float
    bottom: float
    items: list[PlacedText] = field(default_factory=list)


def place_text_items(items: Sequence[TextItem], viewport: Viewport) -> list[PlacedText]:
    out: list[PlacedText] = []
    for it in items:
        vx, vy = viewport.convert_point(it.x, it.y)
        size_px = it.font_size * viewport.scale
        out.append(
            PlacedText(
                html=escape_html(it.text),
                raw=it.text,
                x=vx,
                top=vy - size_px,
                bottom=vy,
                width=it.width * viewport.scale,
            )
        )
    return out


def embed_links(items: Sequence[PlacedText], links: Sequence[LinkInfo]) -> None:
    """Wrap each item whose box center falls inside a link in an anchor."""
    for item in items:
        cx = item.x + item.width / 2.0
        cy = item.top + item.height / 2.0
        for link in links:
            if link.contains_point(cx, cy):
                if is_valid_url(link.url):
                    item.html = f'<a href="{escape_html(link.url)}" style="{ANCHOR_STYLE}">{item.html}</a>'
                break


def group_regions(items: Sequence[PlacedText], gap_px: float) -> list[TextRegion]:
    """Greedy top-to-bottom grouping; an item within ``gap_px`` of the region bottom extends it."""
    regions: list[TextRegion] = []
    current: TextRegion | None = None
    for item in sorted(items, key=lambda t: t.top):
        if not item.raw.strip():
            continue
        if current is not None and item.top <= current.bottom + gap_px:
            current.bottom = max(current.bottom, item.bottom)
            current.items.append(item)
            continue
        if current is not None:
            regions.append(current)
        current = TextRegion(top=item.top, bottom=item.bottom, items=[item])
    if current is not None:
        regions.append(current)
    return regions


def region_html(region: TextRegion, *, sort_px: float, join_px: float) -> str:
    def reading_order(a: PlacedText, b: PlacedText) -> float:
        if abs(a.top - b.top) < sort_px:
            return a.x - b.x
        return a.top - b.top

    ordered = sorted(region.items, key=cmp_to_key(reading_order))

    lines: list[str] = []
    line_y: float | None = None
    line_text = ""
    for item in ordered:
        if line_y is None:
            line_y, line_text = item.top, item.html
        elif abs(item.top - line_y) < join_px:
            line_text += " " + item.html
        else:
            lines.append(line_text)
            line_y, line_text = item.top, item.html
    if line_text:
        lines.append(line_text)
    return "".join(f'<p style="{LINE_STYLE}">{line}</p>' for line in lines)


@dataclass
class RegionSegmenter:
    """Partition a rendered page into alternating text and image blocks.

    Text items are grouped into vertical regions; the bands between regions
    become image blocks when the rendered pixels there are not near-white.
    """

    segment_cfg: dict[str, Any] = field(default_factory=dict)
    on_error: Callable[[PipelineError], None] | None = None

    @property
    def gap_px(self) -> float:
        return float(self.segment_cfg.get("region_gap_px", 10))

    @property
    def min_gap_height_px(self) -> float:
        return float(self.segment_cfg.get("min_gap_height_px", 5))

    @property
    def sample_stride(self) -> int:
        return max(1, int(self.segment_cfg.get("sample_stride", 10)))

    @property
    def white_threshold(self) -> int:
        return int(self.segment_cfg.get("white_threshold", 250))

    def is_blank(self, bitmap: Image.Image, y: float, height: float) -> bool:
        w, h = bitmap.size
        y0 = max(0, int(math.floor(y)))
        y1 = min(h, int(math.ceil(y + height)))
        if y1 <= y0 or w <= 0:
            return True
        band = np.asarray(bitmap.crop((0, y0, w, y1)).convert("RGBA")).reshape(-1, 4)
        sampled = band[:: self.sample_stride]
        visible = sampled[:, 3] > 0
        dark = (sampled[:, :3] < self.white_threshold).any(axis=1)
        return not bool(np.any(visible & dark))

    def _gap_block(self, page: RasterPage, y: float, height: float) -> ExtractedBlock | None:
        if height <= self.min_gap_height_px:
            return None
        try:
            if self.is_blank(page.bitmap, y, height):
                return None
            y0 = max(0, int(math.floor(y)))
            y1 = min(page.height, int(math.ceil(y + height)))
            crop = page.bitmap.crop((0, y0, page.width, y1))
            return ExtractedBlock(type="image", y=y0, height=y1 - y0, content=crop, x=0.0, width=page.width)
        except Exception as e:
            err = RegionExtractionError(y, height, str(e))
            logger.warning("%s (%s)", err, page.page_id)
            if self.on_error is not None:
                self.on_error(err)
            return None

    def segment(self, page: RasterPage, text_items: Sequence[TextItem] | None = None) -> list[ExtractedBlock]:
        items_in = page.text_items if text_items is None else text_items
        viewport = page.viewport
        if viewport is None:
            raise ValueError("segment() needs a page rendered with a viewport")

        placed = place_text_items(items_in, viewport)
        embed_links(placed, page.links)
        regions = group_regions(placed, self.gap_px)

        sort_px = float(self.segment_cfg.get("same_line_sort_px", 5))
        join_px = float(self.segment_cfg.get("same_line_join_px", 8))

        blocks: list[ExtractedBlock] = []
        last_y = 0.0
        for region in regions:
            gap = self._gap_block(page, last_y, region.top - last_y)
            if gap is not None:
                blocks.append(gap)
            blocks.append(
                ExtractedBlock(
                    type="text",
                    y=region.top,
                    height=region.bottom - region.top,
                    content=region_html(region, sort_px=sort_px, join_px=join_px),
                )
            )
            last_y = region.bottom

        tail = self._gap_block(page, last_y, page.height - last_y)
        if tail is not None:
            blocks.append(tail)

        logger.debug(
            "%s segmented: %d text region(s), %d block(s)", page.page_id, len(regions), len(blocks)
        )
        return blocks
