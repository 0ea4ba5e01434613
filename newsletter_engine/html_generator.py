"""Email-safe HTML export.

Blocks become rows of a single 800px table with inline styles only. Link
rectangles arrive in the block's natural pixel frame (1600px wide for sliced
images) and are projected to the display width here, either as an image map
(works in clients that strip positioned CSS) or as absolutely positioned
anchor overlays.
"""
from __future__ import annotations

import base64
import logging
import re
from typing import Iterable, Sequence

from .slicer import CANONICAL_WIDTH
from .types import Block, HtmlBlock, ImageBlock, LinkInfo, PdfBlock, TextBlock
from .utils import escape_html, fmt_px, is_valid_url

logger = logging.getLogger(__name__)

DISPLAY_WIDTH = 800
LINK_MODES = ("map", "overlay")

_MAP_NAME_RE = re.compile(r"[^A-Za-z0-9_-]")

IMG_STYLE = "display: block; width: 100%; max-width: 800px; height: auto; border: 0;"


def display_scale(natural_width: float | None, display_width: int = DISPLAY_WIDTH) -> float:
    """``display_width / natural_width``; blocks without a width are assumed canonical."""
    if natural_width and natural_width > 0:
        return display_width / float(natural_width)
    return display_width / float(CANONICAL_WIDTH)


def safe_links(links: Iterable[LinkInfo]) -> list[LinkInfo]:
    out: list[LinkInfo] = []
    for ln in links:
        if is_valid_url(ln.url):
            out.append(ln)
        else:
            logger.debug("Dropping link with disallowed URL: %r", ln.url[:80])
    return out


def area_coords(link: LinkInfo, scale: float) -> tuple[int, int, int, int]:
    return (
        int(round(link.x * scale)),
        int(round(link.y * scale)),
        int(round((link.x + link.width) * scale)),
        int(round((link.y + link.height) * scale)),
    )


def image_map(name: str, links: Sequence[LinkInfo], scale: float) -> str:
    areas = []
    for ln in links:
        x1, y1, x2, y2 = area_coords(ln, scale)
        areas.append(
            f'<area shape="rect" coords="{x1},{y1},{x2},{y2}" href="{escape_html(ln.url)}" target="_blank" alt="Link" />'
        )
    return f'<map name="{name}">{"".join(areas)}</map>'


def overlay_anchors(links: Sequence[LinkInfo], scale: float) -> str:
    out = []
    for ln in links:
        url = escape_html(ln.url)
        out.append(
            f'<a href="{url}" target="_blank" title="{url}" style="position: absolute; '
            f"left: {fmt_px(ln.x * scale)}px; top: {fmt_px(ln.y * scale)}px; "
            f"width: {fmt_px(ln.width * scale)}px; height: {fmt_px(ln.height * scale)}px; "
            'z-index: 10; cursor: pointer; background-color: rgba(0,0,0,0);"></a>'
        )
    return "".join(out)


def map_name(block: Block) -> str:
    return "map-" + _MAP_NAME_RE.sub("-", block.id)


def image_src(block: ImageBlock | PdfBlock) -> str:
    if block.src:
        return block.src
    if block.buffer:
        return "data:image/png;base64," + base64.b64encode(block.buffer).decode("ascii")
    return ""


def _row(inner: str, td_style: str = "padding: 0;", align: str = "center") -> str:
    return f'<tr><td align="{align}" style="{td_style}">{inner}</td></tr>'


def render_image_block(block: ImageBlock, link_mode: str, display_width: int) -> str:
    src = escape_html(image_src(block))
    alt = escape_html(block.alt or "")
    links = safe_links(block.links)
    scale = display_scale(block.width, display_width)

    if links and link_mode == "overlay":
        img = f'<img src="{src}" alt="{alt}" style="{IMG_STYLE}" />'
        return _row(
            '<div style="position: relative; display: inline-block; width: 100%; max-width: 800px;">'
            f"{img}{overlay_anchors(links, scale)}</div>"
        )

    if links:
        name = map_name(block)
        img = f'<img src="{src}" alt="{alt}" width="{display_width}" usemap="#{name}" style="{IMG_STYLE}" />'
        return _row(f"{img}{image_map(name, links, scale)}")

    img = f'<img src="{src}" alt="{alt}" style="{IMG_STYLE}" />'
    if block.link and is_valid_url(block.link):
        href = escape_html(block.link)
        return _row(f'<a href="{href}" target="_blank" style="text-decoration: none; display: block;">{img}</a>')
    return _row(img)


def render_pdf_block(block: PdfBlock, display_width: int) -> str:
    name = map_name(block)
    scale = display_scale(block.width, display_width)
    text_layer = ""
    if block.content:
        # Outlook cannot stack a transparent text layer over the image.
        text_layer = (
            "<!--[if !mso]><!-->"
            '<div class="textLayer" style="position: absolute; top: 0; left: 0; width: 100%; height: 100%; pointer-events: none;">'
            f'<div style="transform: scale({fmt_px(scale)}); transform-origin: 0 0;">{block.content}</div></div>'
            "<!--<![endif]-->"
        )
    img = (
        f'<img src="{escape_html(image_src(block))}" width="{display_width}" usemap="#{name}" '
        'style="width: 100%; height: auto; display: block;" border="0" />'
    )
    return _row(
        '<div class="pdf-container" style="position: relative; width: 100%; max-width: 800px;">'
        f"{img}{text_layer}{image_map(name, safe_links(block.links), scale)}</div>"
    )


def render_block(block: Block, link_mode: str = "map", display_width: int = DISPLAY_WIDTH) -> str:
    if isinstance(block, ImageBlock):
        return render_image_block(block, link_mode, display_width)
    if isinstance(block, PdfBlock):
        return render_pdf_block(block, display_width)
    if isinstance(block, TextBlock):
        return _row(
            block.content,
            td_style="padding: 20px; font-family: sans-serif; font-size: 16px; line-height: 1.5; color: #333;",
            align="left",
        )
    if isinstance(block, HtmlBlock):
        return _row(block.content)
    logger.warning("Skipping unknown block type: %r", type(block).__name__)
    return ""


def generate_html(
    blocks: Sequence[Block],
    title: str = "Newsletter",
    *,
    link_mode: str = "map",
    display_width: int = DISPLAY_WIDTH,
) -> str:
    """Serialize blocks into a standalone HTML email document."""
    if link_mode not in LINK_MODES:
        raise ValueError(f"Unknown link_mode: {link_mode} (expected one of {', '.join(LINK_MODES)})")

    rows = "\n".join(render_block(b, link_mode, display_width) for b in blocks)

    return f'''<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{escape_html(title)}</title>
  <style>
    body {{ font-family: sans-serif; }}
    .textLayer {{
      position: absolute;
      text-align: initial;
      left: 0;
      top: 0;
      right: 0;
      bottom: 0;
      overflow: hidden;
      line-height: 1.0;
      pointer-events: none;
    }}
    .textLayer span {{
      color: transparent;
      position: absolute;
      white-space: pre;
      cursor: text;
      transform-origin: 0% 0%;
      pointer-events: auto;
    }}
    .textLayer ::selection {{
      background: rgba(0, 0, 255, 0.3);
      color: transparent;
    }}
  </style>
</head>
<body style="margin: 0; padding: 0; background-color: #f4f4f4;">
  <table align="center" border="0" cellpadding="0" cellspacing="0" width="100%" style="max-width: 800px; background-color: #ffffff; margin: 0 auto;">
{rows}
  </table>
</body>
</html>
'''
