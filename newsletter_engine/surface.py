"""Rendering-surface abstraction.

Pipeline stages that composite, crop or encode bitmaps go through a
``SurfaceFactory`` instead of touching Pillow directly, so a different
backend can be injected without patching module state.
"""
from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Protocol

from PIL import Image

WHITE = (255, 255, 255)


class Surface(Protocol):
    width: int
    height: int

    def draw(self, image: Image.Image, x: int, y: int) -> None: ...

    def encode(self, fmt: str = "PNG") -> bytes: ...

    def to_image(self) -> Image.Image: ...


class SurfaceFactory(Protocol):
    def create(self, width: int, height: int) -> Surface: ...

    def wrap(self, image: Image.Image) -> Surface: ...


@dataclass
class PilSurface:
    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.size[0]

    @property
    def height(self) -> int:
        return self.image.size[1]

    def draw(self, image: Image.Image, x: int, y: int) -> None:
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            rgba = image.convert("RGBA")
            self.image.paste(rgba, (int(x), int(y)), rgba)
        else:
            self.image.paste(image.convert("RGB"), (int(x), int(y)))

    def encode(self, fmt: str = "PNG") -> bytes:
        buf = BytesIO()
        self.image.save(buf, format=fmt)
        return buf.getvalue()

    def to_image(self) -> Image.Image:
        return self.image


@dataclass(frozen=True)
class PilSurfaceFactory:
    background: tuple[int, int, int] = WHITE

    def create(self, width: int, height: int) -> PilSurface:
        return PilSurface(Image.new("RGB", (max(1, int(width)), max(1, int(height))), self.background))

    def wrap(self, image: Image.Image) -> PilSurface:
        """Flatten any image mode onto an opaque RGB surface."""
        if image.mode == "RGB":
            return PilSurface(image)
        surface = self.create(*image.size)
        surface.draw(image, 0, 0)
        return surface
