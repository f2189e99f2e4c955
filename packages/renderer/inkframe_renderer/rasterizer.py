"""Glyph painting and bit-depth reduction for e-paper panels."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Sequence

import numpy as np
from PIL import Image

from .canvas import Canvas
from .glyphs import GlyphProvider
from .layout import check_blocks
from .models import LayoutBlock, RasterStats

QUANTIZE_MODES = ("threshold", "floyd-steinberg")
MISSING_GLYPH_MODES = ("box", "skip")


@lru_cache(maxsize=16)
def load_logo(path: str, height: int) -> np.ndarray:
    """Ink coverage of an image file scaled to ``height`` rows.

    Transparent areas count as paper. Pillow errors (missing file, unknown
    format) propagate as ``OSError``.
    """
    with Image.open(Path(path).expanduser()) as image:
        rgba = image.convert("RGBA")
    paper = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
    gray = Image.alpha_composite(paper, rgba).convert("L")
    height = max(1, int(height))
    width = max(1, round(gray.width * height / max(1, gray.height)))
    scaled = gray.resize((width, height), Image.Resampling.LANCZOS)
    ink = 255 - np.asarray(scaled, dtype=np.uint8)
    ink.setflags(write=False)
    return ink


class Rasterizer:
    """Paints layout blocks into a canvas, then reduces it to the panel palette.

    Ink is accumulated as coverage (0..255) and never leaves the block that
    owns it. ``threshold`` is the coverage above which a 1-bit pixel turns
    black.
    """

    def __init__(
        self,
        provider: GlyphProvider,
        quantize: str = "threshold",
        threshold: int = 30,
        missing_glyph: str = "box",
    ) -> None:
        if quantize not in QUANTIZE_MODES:
            raise ValueError(f"Unknown quantize mode: {quantize}")
        if missing_glyph not in MISSING_GLYPH_MODES:
            raise ValueError(f"Unknown missing glyph mode: {missing_glyph}")
        self.provider = provider
        self.quantize = quantize
        self.threshold = max(0, min(254, int(threshold)))
        self.missing_glyph = missing_glyph

    def paint(self, blocks: Sequence[LayoutBlock], canvas: Canvas, logo: np.ndarray | None = None) -> RasterStats:
        check_blocks(blocks, canvas.width, canvas.height)
        stats = RasterStats()
        ink = np.zeros((canvas.height, canvas.width), dtype=np.uint8)
        for block in blocks:
            if block.role == "logo":
                if logo is not None:
                    self._blit(ink, logo, block.x, block.y, block)
                continue
            self._paint_block(block, ink, stats)

        np.minimum(canvas.pixels, 255 - ink, out=canvas.pixels)
        self._reduce(canvas)
        return stats

    def _paint_block(self, block: LayoutBlock, ink: np.ndarray, stats: RasterStats) -> None:
        size = block.font_size
        pitch = block.line_height or self.provider.line_height(size)
        for index, line in enumerate(block.lines):
            line_top = block.y + index * pitch
            pen = float(block.x)
            for ch in line:
                if ch.isspace():
                    pen += self.provider.advance(ch, size)
                    continue
                if not self.provider.has_glyph(ch, size):
                    stats.missing_glyphs += 1
                    pen += self._fallback(ch, block, ink, int(round(pen)), line_top)
                    continue

                glyph = self.provider.glyph(ch, size)
                x = int(round(pen)) + glyph.left
                y = line_top + glyph.top
                if self._blit(ink, glyph.bitmap, x, y, block):
                    stats.clipped_glyphs += 1
                stats.glyphs += 1
                pen += glyph.advance

    def _fallback(self, ch: str, block: LayoutBlock, ink: np.ndarray, x: int, line_top: int) -> float:
        size = block.font_size
        advance = self.provider.advance(ch, size)
        if advance < 1:
            advance = self.provider.advance("n", size)
        if self.missing_glyph == "skip":
            return advance

        width = max(int(advance) - 2, 2)
        height = max(self.provider.line_height(size) - 4, 2)
        box = np.full((height, width), 255, dtype=np.uint8)
        if width > 2 and height > 2:
            box[1:-1, 1:-1] = 0
        self._blit(ink, box, x + 1, line_top + 2, block)
        return advance

    @staticmethod
    def _blit(ink: np.ndarray, bitmap: np.ndarray, x: int, y: int, block: LayoutBlock) -> bool:
        """Max-composite ``bitmap`` at (x, y) clipped to ``block``; True if clipped."""
        if bitmap.size == 0:
            return False
        height, width = bitmap.shape
        x0, y0 = max(x, block.x), max(y, block.y)
        x1, y1 = min(x + width, block.right), min(y + height, block.bottom)
        if x0 >= x1 or y0 >= y1:
            return True

        region = ink[y0:y1, x0:x1]
        source = bitmap[y0 - y : y1 - y, x0 - x : x1 - x]
        np.maximum(region, source, out=region)
        return (x1 - x0, y1 - y0) != (width, height)

    def _reduce(self, canvas: Canvas) -> None:
        if canvas.bit_depth == 8:
            canvas.quantized = True
            return

        if self.quantize == "floyd-steinberg":
            canvas.pixels[...] = self._dither(canvas)
        elif canvas.bit_depth == 1:
            canvas.pixels[...] = np.where(canvas.pixels < 255 - self.threshold, 0, 255).astype(np.uint8)
        else:
            step = canvas.step
            levels = np.rint(canvas.pixels.astype(np.float32) / step).astype(np.uint16) * step
            canvas.pixels[...] = levels.astype(np.uint8)
        canvas.quantized = True

    @staticmethod
    def _dither(canvas: Canvas) -> np.ndarray:
        image = Image.fromarray(canvas.pixels)
        if canvas.bit_depth == 1:
            mono = image.convert("1", dither=Image.Dither.FLOYDSTEINBERG)
            return np.asarray(mono.convert("L"), dtype=np.uint8)

        colors: list[int] = []
        for value in canvas.palette() + [255] * (256 - canvas.levels):
            colors.extend((value, value, value))
        palette = Image.new("P", (1, 1))
        palette.putpalette(colors)

        indexed = image.convert("RGB").quantize(palette=palette, dither=Image.Dither.FLOYDSTEINBERG)
        indices = np.minimum(np.asarray(indexed, dtype=np.uint8), canvas.levels - 1)
        return (indices.astype(np.uint16) * canvas.step).astype(np.uint8)
