"""Glyph providers: advance widths, line metrics and coverage bitmaps."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from .errors import FontError

GLYPH_PROVIDER_KINDS = ("builtin", "truetype")

# Plane 16 private use; no font maps it, so it always renders as .notdef.
_UNMAPPED = "\U0010fffd"


@dataclass(frozen=True)
class Glyph:
    """Coverage bitmap (255 = full ink) positioned relative to the pen.

    ``left`` is measured from the pen x position, ``top`` from the top of
    the line box.
    """

    bitmap: np.ndarray
    left: int
    top: int
    advance: float


class GlyphProvider(ABC):
    kind = "abstract"

    @abstractmethod
    def advance(self, ch: str, size: int) -> float:
        ...

    @abstractmethod
    def line_height(self, size: int) -> int:
        ...

    @abstractmethod
    def has_glyph(self, ch: str, size: int) -> bool:
        ...

    @abstractmethod
    def glyph(self, ch: str, size: int) -> Glyph:
        ...

    def text_width(self, text: str, size: int) -> float:
        return sum(self.advance(ch, size) for ch in text)

    def describe(self) -> dict[str, str]:
        return {"kind": self.kind}


class FontGlyphProvider(GlyphProvider):
    """Pillow FreeType font with per-size and per-glyph caches."""

    def __init__(self) -> None:
        self._fonts: dict[int, ImageFont.FreeTypeFont] = {}
        self._glyphs: dict[tuple[str, int], Glyph] = {}
        self._advances: dict[tuple[str, int], float] = {}
        self._notdef: dict[int, tuple[tuple[int, int, int, int], bytes]] = {}
        self._present: dict[tuple[str, int], bool] = {}

    @abstractmethod
    def _load(self, size: int) -> ImageFont.FreeTypeFont:
        ...

    def font(self, size: int) -> ImageFont.FreeTypeFont:
        size = max(1, int(size))
        font = self._fonts.get(size)
        if font is None:
            font = self._load(size)
            self._fonts[size] = font
        return font

    def advance(self, ch: str, size: int) -> float:
        key = (ch, size)
        value = self._advances.get(key)
        if value is None:
            value = float(self.font(size).getlength(ch))
            self._advances[key] = value
        return value

    def line_height(self, size: int) -> int:
        ascent, descent = self.font(size).getmetrics()
        return int(ascent + descent)

    def _signature(self, ch: str, size: int) -> tuple[tuple[int, int, int, int], bytes]:
        glyph = self.glyph(ch, size)
        bbox = (glyph.left, glyph.top, glyph.bitmap.shape[1], glyph.bitmap.shape[0])
        return bbox, glyph.bitmap.tobytes()

    def has_glyph(self, ch: str, size: int) -> bool:
        if ch.isspace():
            return True
        if not ch.isprintable():
            return False
        key = (ch, size)
        present = self._present.get(key)
        if present is None:
            notdef = self._notdef.get(size)
            if notdef is None:
                notdef = self._signature(_UNMAPPED, size)
                self._notdef[size] = notdef
            present = self._signature(ch, size) != notdef
            self._present[key] = present
        return present

    def _render(self, ch: str, size: int) -> Glyph:
        font = self.font(size)
        left, top, right, bottom = font.getbbox(ch, anchor="la")
        width, height = right - left, bottom - top
        if width <= 0 or height <= 0:
            bitmap = np.zeros((0, 0), dtype=np.uint8)
        else:
            image = Image.new("L", (width, height), 0)
            ImageDraw.Draw(image).text((-left, -top), ch, font=font, fill=255, anchor="la")
            bitmap = np.asarray(image, dtype=np.uint8).copy()
        bitmap.setflags(write=False)
        return Glyph(bitmap=bitmap, left=int(left), top=int(top), advance=self.advance(ch, size))

    def glyph(self, ch: str, size: int) -> Glyph:
        key = (ch, size)
        glyph = self._glyphs.get(key)
        if glyph is None:
            glyph = self._render(ch, size)
            self._glyphs[key] = glyph
        return glyph


class BuiltinGlyphProvider(FontGlyphProvider):
    """Pillow's bundled scalable font; needs no font files on disk."""

    kind = "builtin"

    def _load(self, size: int) -> ImageFont.FreeTypeFont:
        font = ImageFont.load_default(size=size)
        if not isinstance(font, ImageFont.FreeTypeFont):
            raise FontError("Pillow was built without FreeType; the builtin font cannot be scaled")
        return font


class TrueTypeGlyphProvider(FontGlyphProvider):
    kind = "truetype"

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path).expanduser()
        if not self.path.is_file():
            raise FontError(f"Can't read font file {self.path}")

    def _load(self, size: int) -> ImageFont.FreeTypeFont:
        try:
            return ImageFont.truetype(str(self.path), size)
        except OSError as exc:
            raise FontError(f"Can't load font {self.path}: {exc}") from exc

    def describe(self) -> dict[str, str]:
        return {"kind": self.kind, "path": str(self.path)}


def glyph_provider_for(kind: str, path: str | Path | None = None) -> GlyphProvider:
    if kind == "builtin":
        return BuiltinGlyphProvider()
    if kind == "truetype":
        if not path:
            raise FontError("A font path is required for truetype fonts")
        return TrueTypeGlyphProvider(path)
    raise FontError(f"Unknown glyph provider {kind!r}; expected one of {GLYPH_PROVIDER_KINDS}")
