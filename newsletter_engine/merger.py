from __future__ import annotations

import logging
from typing import Sequence

from .surface import PilSurfaceFactory, SurfaceFactory
from .types import LinkInfo, RasterPage

logger = logging.getLogger(__name__)


def page_offsets(pages: Sequence[RasterPage]) -> list[int]:
    """Cumulative top offset of each page in the stacked composite."""
    offsets: list[int] = []
    y = 0
    for page in pages:
        offsets.append(y)
        y += int(page.height)
    return offsets


def merge_pages(pages: Sequence[RasterPage], surfaces: SurfaceFactory | None = None) -> RasterPage:
    """Stack pages vertically onto one white canvas, carrying their links along.

    Narrower pages are left-aligned. Links keep their ``page_index`` and are
    shifted down by the height of all preceding pages.
    """
    if not pages:
        raise ValueError("merge_pages needs at least one page")
    if len(pages) == 1:
        return pages[0]

    surfaces = surfaces or PilSurfaceFactory()
    offsets = page_offsets(pages)
    total_height = sum(int(p.height) for p in pages)
    max_width = max(int(p.width) for p in pages)

    canvas = surfaces.create(max_width, total_height)
    links: list[LinkInfo] = []
    for page, top in zip(pages, offsets):
        canvas.draw(page.bitmap, 0, top)
        links.extend(ln.shifted(dy=top) for ln in page.links)

    logger.debug("Merged %d page(s) into %dx%d with %d link(s)", len(pages), max_width, total_height, len(links))
    return RasterPage(
        bitmap=canvas.to_image(),
        width=max_width,
        height=total_height,
        links=tuple(links),
        page_index=pages[0].page_index,
    )
