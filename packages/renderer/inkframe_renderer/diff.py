"""Frame change detection between consecutive renders."""

from __future__ import annotations

import numpy as np

from .models import DirtyRect


def changed_region(
    previous: np.ndarray,
    current: np.ndarray,
    tile: int = 16,
    max_ratio: float = 0.35,
) -> DirtyRect | None:
    """Bounding rectangle of changed tiles, or None for identical frames.

    When more than ``max_ratio`` of the frame changed the whole frame is
    reported, since a panel refresh of that size costs the same anyway.
    """
    if previous.shape != current.shape:
        raise ValueError("Frame sizes must match")

    height, width = current.shape
    rows = -(-height // tile)
    cols = -(-width // tile)
    diff = previous != current
    if not diff.any():
        return None

    padded = np.zeros((rows * tile, cols * tile), dtype=bool)
    padded[:height, :width] = diff
    changed = padded.reshape(rows, tile, cols, tile).any(axis=(1, 3))

    tile_rows, tile_cols = np.nonzero(changed)
    changed_pixels = len(tile_rows) * tile * tile
    if changed_pixels / (width * height) > max_ratio:
        return DirtyRect(x=0, y=0, w=width, h=height)

    min_x = int(tile_cols.min()) * tile
    min_y = int(tile_rows.min()) * tile
    max_x = int(tile_cols.max()) * tile
    max_y = int(tile_rows.max()) * tile
    rect_w = min(width - min_x, (max_x - min_x) + tile)
    rect_h = min(height - min_y, (max_y - min_y) + tile)
    return DirtyRect(x=min_x, y=min_y, w=rect_w, h=rect_h)
