"""Typed renderer models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LayoutBlock:
    x: int
    y: int
    width: int
    height: int
    lines: tuple[str, ...]
    font_size: int
    role: str = "title"
    line_height: int = 0

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def overlaps(self, other: LayoutBlock) -> bool:
        return (
            self.x < other.right
            and other.x < self.right
            and self.y < other.bottom
            and other.y < self.bottom
        )


@dataclass(frozen=True)
class LayoutResult:
    blocks: tuple[LayoutBlock, ...]
    placed: int
    dropped: int
    truncated: bool = False


@dataclass(frozen=True)
class DirtyRect:
    x: int
    y: int
    w: int
    h: int


@dataclass
class RasterStats:
    glyphs: int = 0
    missing_glyphs: int = 0
    clipped_glyphs: int = 0


@dataclass(frozen=True)
class EncodedFrame:
    width: int
    height: int
    bit_depth: int
    format: str
    data: bytes
    digest: str
