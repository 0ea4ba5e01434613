from __future__ import annotations

import base64
import math
import uuid
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Union

from PIL import Image


def _new_block_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class LinkInfo:
    url: str
    x: float
    y: float
    width: float
    height: float
    page_index: int | None = None

    def shifted(self, dx: float = 0.0, dy: float = 0.0) -> LinkInfo:
        return replace(self, x=self.x + dx, y=self.y + dy)

    def scaled(self, factor: float) -> LinkInfo:
        return replace(
            self,
            x=self.x * factor,
            y=self.y * factor,
            width=self.width * factor,
            height=self.height * factor,
        )

    def contains_point(self, px: float, py: float) -> bool:
        return self.x <= px <= self.x + self.width and self.y <= py <= self.y + self.height

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        if out["page_index"] is None:
            out.pop("page_index")
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LinkInfo:
        page_index = data.get("page_index", data.get("pageIndex"))
        return cls(
            url=str(data.get("url", "")),
            x=float(data.get("x", 0)),
            y=float(data.get("y", 0)),
            width=float(data.get("width", 0)),
            height=float(data.get("height", 0)),
            page_index=int(page_index) if page_index is not None else None,
        )


@dataclass(frozen=True)
class TextItem:
    """One run of text in PDF point space; (x, y) is the baseline origin."""

    text: str
    x: float
    y: float
    width: float
    font_size: float


@dataclass(frozen=True)
class Viewport:
    """Affine map from PDF point space to bitmap pixel space.

    The matrix follows the (a, b, c, d, e, f) convention:
    x' = a*x + c*y + e, y' = b*x + d*y + f.
    """

    matrix: tuple[float, float, float, float, float, float]
    scale: float
    width: int
    height: int

    @classmethod
    def for_page(cls, width_pt: float, height_pt: float, scale: float) -> Viewport:
        return cls(
            matrix=(scale, 0.0, 0.0, -scale, 0.0, height_pt * scale),
            scale=scale,
            width=int(math.ceil(width_pt * scale)),
            height=int(math.ceil(height_pt * scale)),
        )

    def convert_point(self, x: float, y: float) -> tuple[float, float]:
        a, b, c, d, e, f = self.matrix
        return a * x + c * y + e, b * x + d * y + f

    def convert_rect(self, x1: float, y1: float, x2: float, y2: float) -> Rect:
        # Producers emit corners in arbitrary order.
        px1, py1 = self.convert_point(x1, y1)
        px2, py2 = self.convert_point(x2, y2)
        return Rect(
            x=min(px1, px2),
            y=min(py1, py2),
            width=abs(px2 - px1),
            height=abs(py2 - py1),
        )


@dataclass(frozen=True)
class RasterPage:
    bitmap: Image.Image
    width: int
    height: int
    links: tuple[LinkInfo, ...] = ()
    page_index: int = 0
    viewport: Viewport | None = None
    text_items: tuple[TextItem, ...] = ()

    @property
    def page_id(self) -> str:
        return f"page_{self.page_index + 1:03d}"


@dataclass(frozen=True)
class Slice:
    bitmap: Image.Image
    y_offset: int
    height: int
    width: int
    links: tuple[LinkInfo, ...] = ()


@dataclass(frozen=True)
class ExtractedBlock:
    type: str  # text|image
    y: float
    height: float
    content: Union[str, Image.Image]
    x: float = 0.0
    width: float | None = None


@dataclass(frozen=True)
class ImageBlock:
    src: str | None = None
    buffer: bytes | None = None
    width: int | None = None
    height: int | None = None
    links: tuple[LinkInfo, ...] = ()
    link: str | None = None
    alt: str = ""
    id: str = field(default_factory=_new_block_id)
    type: str = field(default="image", init=False)


@dataclass(frozen=True)
class TextBlock:
    content: str
    id: str = field(default_factory=_new_block_id)
    type: str = field(default="text", init=False)


@dataclass(frozen=True)
class PdfBlock:
    src: str | None = None
    buffer: bytes | None = None
    content: str | None = None
    width: int | None = None
    height: int | None = None
    links: tuple[LinkInfo, ...] = ()
    id: str = field(default_factory=_new_block_id)
    type: str = field(default="pdf", init=False)


@dataclass(frozen=True)
class HtmlBlock:
    content: str
    page_index: int | None = None
    id: str = field(default_factory=_new_block_id)
    type: str = field(default="html", init=False)


Block = Union[ImageBlock, TextBlock, PdfBlock, HtmlBlock]


def block_to_dict(block: Block) -> dict[str, Any]:
    """JSON-safe representation; raw buffers are emitted as base64."""
    out: dict[str, Any] = {"id": block.id, "type": block.type}
    for name in ("src", "content", "width", "height", "link", "alt", "page_index"):
        if hasattr(block, name):
            value = getattr(block, name)
            if value is not None and value != "":
                out[name] = value
    buf = getattr(block, "buffer", None)
    if buf is not None:
        out["buffer_b64"] = base64.b64encode(buf).decode("ascii")
    links = getattr(block, "links", None)
    if links is not None:
        out["links"] = [ln.to_dict() for ln in links]
    return out


def block_from_dict(data: dict[str, Any]) -> Block:
    kind = data.get("type")
    block_id = str(data.get("id") or _new_block_id())
    links = tuple(LinkInfo.from_dict(ln) for ln in (data.get("links") or []) if isinstance(ln, dict))
    buf = base64.b64decode(data["buffer_b64"]) if data.get("buffer_b64") else None

    if kind == "image":
        return ImageBlock(
            src=data.get("src"),
            buffer=buf,
            width=data.get("width"),
            height=data.get("height"),
            links=links,
            link=data.get("link"),
            alt=str(data.get("alt") or ""),
            id=block_id,
        )
    if kind == "text":
        return TextBlock(content=str(data.get("content") or ""), id=block_id)
    if kind == "pdf":
        return PdfBlock(
            src=data.get("src"),
            buffer=buf,
            content=data.get("content"),
            width=data.get("width"),
            height=data.get("height"),
            links=links,
            id=block_id,
        )
    if kind == "html":
        page_index = data.get("page_index", data.get("pageIndex"))
        return HtmlBlock(content=str(data.get("content") or ""), page_index=page_index, id=block_id)
    raise ValueError(f"Unknown block type: {kind}")
