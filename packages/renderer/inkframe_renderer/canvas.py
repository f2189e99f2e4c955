"""Fixed-size grayscale pixel buffer for one rendered frame."""

from __future__ import annotations

import numpy as np
from PIL import Image

from .errors import CanvasError

SUPPORTED_BIT_DEPTHS = (1, 2, 4, 8)
MAX_SIDE = 4096

WHITE = 255
BLACK = 0


class Canvas:
    """Luminance buffer (0 = black, 255 = white) at a panel's bit depth.

    The Rasterizer paints into ``pixels`` and then restricts them to the
    palette of ``bit_depth``; after that the canvas is ``quantized`` and
    ready for an encoder.
    """

    def __init__(self, width: int, height: int, bit_depth: int = 1) -> None:
        if not isinstance(width, int) or not isinstance(height, int):
            raise CanvasError(f"Canvas size must be integral, got {width!r}x{height!r}")
        if width <= 0 or height <= 0:
            raise CanvasError(f"Could not create canvas {width}x{height}")
        if width > MAX_SIDE or height > MAX_SIDE:
            raise CanvasError(f"Canvas {width}x{height} exceeds {MAX_SIDE}px per side")
        if bit_depth not in SUPPORTED_BIT_DEPTHS:
            raise CanvasError(f"Unsupported bit depth {bit_depth}; expected one of {SUPPORTED_BIT_DEPTHS}")

        self.width = width
        self.height = height
        self.bit_depth = bit_depth
        self.pixels = np.full((height, width), WHITE, dtype=np.uint8)
        self.quantized = False

    @property
    def levels(self) -> int:
        return 2**self.bit_depth

    @property
    def step(self) -> int:
        return WHITE // (self.levels - 1)

    def palette(self) -> list[int]:
        return [i * self.step for i in range(self.levels)]

    def level_indices(self) -> np.ndarray:
        """Per-pixel palette index; the highest index is white."""
        return (self.pixels // self.step).astype(np.uint8)

    def to_image(self) -> Image.Image:
        image = Image.fromarray(self.pixels)
        if self.bit_depth == 1:
            return image.convert("1", dither=Image.Dither.NONE)
        return image

    def snapshot(self) -> np.ndarray:
        copy = self.pixels.copy()
        copy.setflags(write=False)
        return copy
