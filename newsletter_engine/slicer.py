from __future__ import annotations

import logging
from typing import Iterable

from PIL import Image

from .types import LinkInfo, Slice

logger = logging.getLogger(__name__)

CANONICAL_WIDTH = 1600


def resize_to_width(image: Image.Image, width: int = CANONICAL_WIDTH) -> Image.Image:
    w, h = image.size
    if w == width:
        return image
    new_h = max(1, int(round(h * width / float(w))))
    return image.resize((width, new_h), Image.Resampling.LANCZOS)


def scale_links(links: Iterable[LinkInfo], factor: float) -> list[LinkInfo]:
    return [ln.scaled(factor) for ln in links]


def links_for_slice(links: Iterable[LinkInfo], y_offset: float, height: float) -> list[LinkInfo]:
    """Links intersecting [y_offset, y_offset + height), in slice-local coordinates.

    Rectangles are moved, not cut: a link crossing a boundary is copied in full
    into every slice it touches.
    """
    out: list[LinkInfo] = []
    for ln in links:
        local = ln.shifted(dy=-y_offset)
        if local.y + local.height > 0 and local.y < height:
            out.append(local)
    return out


def slice_image(
    image: Image.Image,
    target_height: int,
    links: Iterable[LinkInfo] = (),
    *,
    width: int = CANONICAL_WIDTH,
) -> list[Slice]:
    """Resize ``image`` to ``width`` and cut it into horizontal strips.

    ``target_height <= 0`` yields a single strip of the full resized height.
    Link rectangles are rescaled by ``width / original_width`` before being
    distributed to the strips.
    """
    original_width = image.size[0]
    if original_width <= 0:
        raise ValueError("image has zero width")

    resized = resize_to_width(image, width)
    r_width, r_height = resized.size
    step = r_height if target_height <= 0 else int(target_height)

    scaled = scale_links(links, width / float(original_width))

    slices: list[Slice] = []
    y = 0
    while y < r_height:
        h = min(step, r_height - y)
        strip = resized.crop((0, y, r_width, y + h))
        slices.append(
            Slice(
                bitmap=strip,
                y_offset=y,
                height=h,
                width=r_width,
                links=tuple(links_for_slice(scaled, y, h)),
            )
        )
        y += h

    logger.debug(
        "Sliced %dx%d -> %dx%d into %d strip(s) of <= %d px",
        image.size[0], image.size[1], r_width, r_height, len(slices), step,
    )
    return slices
