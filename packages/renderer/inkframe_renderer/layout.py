"""Deterministic placement of feed entries onto a fixed-size canvas.

Every width comes from the glyph provider, so identical entries, canvas
size and font always produce identical blocks. Nothing is ever rendered
partially: an entry either fits as a whole (possibly without its summary)
or is dropped together with every lower-priority entry.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

from inkframe_feeds.models import FeedEntry

from .errors import LayoutError
from .glyphs import GlyphProvider
from .models import LayoutBlock, LayoutResult

ELLIPSIS = "…"
LAYOUT_MODULES = ("feed-list", "news-headlines")


@dataclass(frozen=True)
class LayoutStyle:
    padding: int = 6
    spacing: int = 4
    line_spacing: int = 0
    title_size: int = 13
    summary_size: int = 11
    summary_lines: int = 2
    show_summary: bool = True
    show_footer: bool = True
    footer_size: int = 10
    timestamp_format: str = "%m-%d %H:%M"
    headline_max_size: int = 40
    headline_min_size: int = 10


def prioritize(entries: Iterable[FeedEntry]) -> list[FeedEntry]:
    """Newest first, undated entries last, ties in feed order."""
    indexed = list(enumerate(entries))
    indexed.sort(
        key=lambda pair: (
            pair[1].published_at is None,
            -pair[1].published_at.timestamp() if pair[1].published_at else 0.0,
            pair[0],
        )
    )
    return [entry for _, entry in indexed]


def wrap_text(text: str, width: int, size: int, provider: GlyphProvider) -> list[str]:
    """Greedy word wrap; words wider than a line are broken by character."""
    if width <= 0:
        return []

    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if provider.text_width(candidate, size) <= width:
            current = candidate
            continue
        if current:
            lines.append(current)
            current = ""
        if provider.text_width(word, size) <= width:
            current = word
            continue

        piece = ""
        for ch in word:
            if piece and provider.text_width(piece + ch, size) > width:
                lines.append(piece)
                piece = ch
            else:
                piece += ch
        current = piece

    if current:
        lines.append(current)
    return lines


def ellipsize(line: str, width: int, size: int, provider: GlyphProvider) -> str:
    if provider.text_width(ELLIPSIS, size) > width:
        return ""
    text = line.rstrip()
    while text and provider.text_width(text + ELLIPSIS, size) > width:
        text = text[:-1].rstrip()
    return text + ELLIPSIS


def clamp_lines(
    lines: list[str], max_lines: int, width: int, size: int, provider: GlyphProvider
) -> tuple[list[str], bool]:
    if len(lines) <= max_lines:
        return list(lines), False
    if max_lines <= 0:
        return [], True
    kept = list(lines[:max_lines])
    kept[-1] = ellipsize(kept[-1], width, size, provider)
    if not kept[-1]:
        kept.pop()
    return kept, True


def check_blocks(blocks: Sequence[LayoutBlock], width: int, height: int) -> None:
    for block in blocks:
        if block.x < 0 or block.y < 0 or block.right > width or block.bottom > height:
            raise LayoutError(f"Block {block.role!r} at ({block.x}, {block.y}) exceeds canvas {width}x{height}")
        if block.width <= 0 or block.height <= 0:
            raise LayoutError(f"Block {block.role!r} at ({block.x}, {block.y}) is empty")
    for i, first in enumerate(blocks):
        for second in blocks[i + 1 :]:
            if first.overlaps(second):
                raise LayoutError(f"Blocks {first.role!r} and {second.role!r} overlap at y={second.y}")


class BaseLayout(ABC):
    module = "abstract"

    def __init__(self, provider: GlyphProvider, style: LayoutStyle | None = None) -> None:
        self.provider = provider
        self.style = style or LayoutStyle()

    @abstractmethod
    def layout(
        self,
        entries: Sequence[FeedEntry],
        width: int,
        height: int,
        source_name: str = "",
        rendered_at: datetime | None = None,
        logo_width: int | None = None,
    ) -> LayoutResult:
        ...

    def _pitch(self, size: int) -> int:
        return self.provider.line_height(size) + self.style.line_spacing

    def _block_height(self, line_count: int, size: int) -> int:
        if line_count <= 0:
            return 0
        return line_count * self.provider.line_height(size) + (line_count - 1) * self.style.line_spacing

    def _max_lines(self, available: int, size: int) -> int:
        pitch = self._pitch(size)
        if pitch <= 0:
            return 0
        return max(0, (available + self.style.line_spacing) // pitch)

    def _text_block(self, x: int, y: int, width: int, lines: list[str], size: int, role: str) -> LayoutBlock:
        return LayoutBlock(
            x=x,
            y=y,
            width=width,
            height=self._block_height(len(lines), size),
            lines=tuple(lines),
            font_size=size,
            role=role,
            line_height=self._pitch(size),
        )

    def _footer(
        self, width: int, height: int, source_name: str, rendered_at: datetime | None, logo_width: int | None = None
    ) -> list[LayoutBlock]:
        """Source logo (or name) on the left, render time on the right, on the last line."""
        style = self.style
        size = style.footer_size
        line_height = self.provider.line_height(size)
        pad = style.padding
        y = height - pad - line_height
        inner = width - 2 * pad
        if y < pad or inner <= 0:
            return []

        blocks: list[LayoutBlock] = []
        left_limit = inner
        stamp = rendered_at.strftime(style.timestamp_format) if rendered_at else ""
        if stamp:
            stamp_width = math.ceil(self.provider.text_width(stamp, size))
            if 0 < stamp_width <= inner:
                x = width - pad - stamp_width
                blocks.append(self._text_block(x, y, stamp_width, [stamp], size, "footer"))
                left_limit = x - style.spacing - pad

        if logo_width and 0 < logo_width <= left_limit:
            logo = LayoutBlock(x=pad, y=y, width=logo_width, height=line_height, lines=(), font_size=size, role="logo")
            return [logo] + blocks

        name = source_name.strip()
        if name and left_limit > 0:
            if self.provider.text_width(name, size) > left_limit:
                name = ellipsize(name, left_limit, size, self.provider)
            name_width = min(left_limit, math.ceil(self.provider.text_width(name, size)))
            if name and name_width > 0:
                blocks.insert(0, self._text_block(pad, y, name_width, [name], size, "footer"))
        return blocks

    def _content_area(
        self, width: int, height: int, source_name: str, rendered_at: datetime | None, logo_width: int | None = None
    ) -> tuple[int, int, list[LayoutBlock]]:
        if width <= 0 or height <= 0:
            raise LayoutError(f"Canvas {width}x{height} has no area")
        footer = self._footer(width, height, source_name, rendered_at, logo_width) if self.style.show_footer else []
        bottom = height - self.style.padding
        if footer:
            bottom = min(block.y for block in footer) - self.style.spacing
        return self.style.padding, bottom, footer


class FeedListLayout(BaseLayout):
    """Entries stacked top-down, newest first."""

    module = "feed-list"

    def _entry_blocks(
        self, entry: FeedEntry, x: int, y: int, width: int, available: int, with_summary: bool
    ) -> tuple[list[LayoutBlock], bool] | None:
        style = self.style
        title_lines = wrap_text(entry.title, width, style.title_size, self.provider)
        title = self._text_block(x, y, width, title_lines, style.title_size, "title")
        if not title_lines or title.height > available:
            return None

        has_summary = bool(entry.summary) and style.show_summary and style.summary_lines > 0
        if not with_summary or not has_summary:
            return [title], has_summary

        summary_lines = wrap_text(entry.summary, width, style.summary_size, self.provider)
        summary_lines, clamped = clamp_lines(summary_lines, style.summary_lines, width, style.summary_size, self.provider)
        if not summary_lines:
            return [title], True
        summary = self._text_block(x, title.bottom, width, summary_lines, style.summary_size, "summary")
        if title.height + summary.height > available:
            return None
        return [title, summary], clamped

    def _cut_title(
        self, entry: FeedEntry, x: int, y: int, width: int, available: int
    ) -> tuple[list[LayoutBlock], bool] | None:
        size = self.style.title_size
        lines = wrap_text(entry.title, width, size, self.provider)
        lines, _ = clamp_lines(lines, self._max_lines(available, size), width, size, self.provider)
        if not lines:
            return None
        return [self._text_block(x, y, width, lines, size, "title")], True

    def layout(
        self,
        entries: Sequence[FeedEntry],
        width: int,
        height: int,
        source_name: str = "",
        rendered_at: datetime | None = None,
        logo_width: int | None = None,
    ) -> LayoutResult:
        top, bottom, footer = self._content_area(width, height, source_name, rendered_at, logo_width)
        pad = self.style.padding
        inner = width - 2 * pad
        ordered = [entry for entry in prioritize(entries) if entry.title.strip()]

        blocks: list[LayoutBlock] = []
        placed = 0
        truncated = False
        cursor = top
        if inner > 0:
            for entry in ordered:
                y = cursor if placed == 0 else cursor + self.style.spacing
                available = bottom - y
                if available <= 0:
                    break

                attempt = self._entry_blocks(entry, pad, y, inner, available, with_summary=True)
                if attempt is None and self.style.show_summary:
                    attempt = self._entry_blocks(entry, pad, y, inner, available, with_summary=False)
                if attempt is None and placed == 0:
                    attempt = self._cut_title(entry, pad, y, inner, available)
                if attempt is None:
                    break

                entry_blocks, shortened = attempt
                blocks.extend(entry_blocks)
                truncated = truncated or shortened
                placed += 1
                cursor = max(block.bottom for block in entry_blocks)

        return LayoutResult(
            blocks=tuple(blocks + footer),
            placed=placed,
            dropped=len(entries) - placed,
            truncated=truncated or placed < len(entries),
        )


class HeadlineLayout(BaseLayout):
    """The top story's title, as large as it fits above the footer."""

    module = "news-headlines"

    def layout(
        self,
        entries: Sequence[FeedEntry],
        width: int,
        height: int,
        source_name: str = "",
        rendered_at: datetime | None = None,
        logo_width: int | None = None,
    ) -> LayoutResult:
        top, bottom, footer = self._content_area(width, height, source_name, rendered_at, logo_width)
        pad = self.style.padding
        inner = width - 2 * pad
        available = bottom - top
        if not entries or inner <= 0 or available <= 0:
            return LayoutResult(blocks=tuple(footer), placed=0, dropped=len(entries))

        # Feeds list their top story first, so publication time is ignored here.
        title = entries[0].title
        max_size = max(self.style.headline_max_size, self.style.headline_min_size)
        truncated = False
        lines: list[str] = []
        size = self.style.headline_min_size
        for candidate in range(max_size, self.style.headline_min_size - 1, -1):
            wrapped = wrap_text(title, inner, candidate, self.provider)
            if wrapped and self._block_height(len(wrapped), candidate) <= available:
                lines, size = wrapped, candidate
                break
        else:
            wrapped = wrap_text(title, inner, size, self.provider)
            lines, truncated = clamp_lines(wrapped, self._max_lines(available, size), inner, size, self.provider)

        blocks = list(footer)
        if lines:
            blocks.insert(0, self._text_block(pad, top, inner, lines, size, "headline"))
        return LayoutResult(
            blocks=tuple(blocks),
            placed=1 if lines else 0,
            dropped=len(entries) - (1 if lines else 0),
            truncated=truncated,
        )


def layout_for(module: str, provider: GlyphProvider, style: LayoutStyle | None = None) -> BaseLayout:
    if module == "feed-list":
        return FeedListLayout(provider, style)
    if module == "news-headlines":
        return HeadlineLayout(provider, style)
    raise LayoutError(f"Unknown layout module {module!r}; expected one of {LAYOUT_MODULES}")
