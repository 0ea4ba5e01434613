from __future__ import annotations

from typing import Sequence

from .types import TextItem, Viewport
from .utils import escape_html, fmt_px


def build_text_layer(items: Sequence[TextItem], viewport: Viewport) -> str:
    """Transparent, absolutely positioned spans over the page image.

    Positions are in page pixel space, the same frame as the page's links,
    so the layer lines up with the rendered bitmap for selection and search.
    """
    spans: list[str] = []
    for item in items:
        if not item.text.strip():
            continue
        vx, vy = viewport.convert_point(item.x, item.y)
        size_px = item.font_size * viewport.scale
        width_px = item.width * viewport.scale
        style = (
            f"position: absolute; left: {fmt_px(vx)}px; top: {fmt_px(vy - size_px)}px; "
            f"font-size: {fmt_px(size_px)}px; font-family: sans-serif; color: transparent; "
            "white-space: pre; pointer-events: auto;"
        )
        if width_px > 0:
            style += f" width: {fmt_px(width_px)}px;"
        spans.append(f'<span style="{style}">{escape_html(item.text)}</span>')
    return "\n".join(spans)
