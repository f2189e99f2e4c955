"""One render cycle: fetch, lay out, rasterize, encode, hand to the sink.

A cycle receives everything it needs through an explicit ``RenderContext``
and the previous successful output through an immutable ``RenderHistory``.
It returns a new history instead of mutating shared state, so a failed
cycle leaves the last good frame untouched.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Sequence

import numpy as np

from inkframe_feeds import FeedDocument, FeedEntry, FeedError, FeedFetcher, FeedSource, select_source
from inkframe_output import FileSink, OpenEPaperLinkSink, OutputSink, SinkResult
from inkframe_output.errors import SinkError
from inkframe_renderer import (
    BaseLayout,
    Canvas,
    DirtyRect,
    EncodedFrame,
    GlyphProvider,
    ImageEncoder,
    LayoutResult,
    LayoutStyle,
    RasterStats,
    Rasterizer,
    changed_region,
    encoder_for,
    glyph_provider_for,
    layout_for,
    load_logo,
)

from .config import AppConfig, find_tag

logger = logging.getLogger("inkframe.pipeline")


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass(frozen=True)
class CanvasSpec:
    width: int
    height: int
    bit_depth: int = 1


@dataclass(frozen=True)
class RenderContext:
    canvas: CanvasSpec
    provider: GlyphProvider
    layout: BaseLayout
    rasterizer: Rasterizer
    encoder: ImageEncoder
    sources: tuple[FeedSource, ...]
    fetcher: FeedFetcher
    sink: OutputSink | None = None
    selection: str = "first"
    clock: Callable[[], datetime] = _local_now
    rng: random.Random = field(default_factory=random.Random)


@dataclass(frozen=True)
class RenderResult:
    frame: EncodedFrame
    layout: LayoutResult
    entries: tuple[FeedEntry, ...]
    source: str
    rendered_at: datetime
    pixels: np.ndarray
    stats: RasterStats


@dataclass(frozen=True)
class RenderHistory:
    last: RenderResult | None = None
    source_url: str | None = None
    etag: str | None = None
    last_modified: str | None = None

    def succeeded(self, result: RenderResult, document: FeedDocument) -> RenderHistory:
        return RenderHistory(
            last=result,
            source_url=document.source.url,
            etag=document.etag,
            last_modified=document.last_modified,
        )


@dataclass(frozen=True)
class CycleOutcome:
    status: str
    history: RenderHistory
    cycle: int = 0
    result: RenderResult | None = None
    error: str | None = None
    changed: DirtyRect | None = None
    sink_result: SinkResult | None = None


def layout_style(cfg: AppConfig) -> LayoutStyle:
    lay = cfg.layout
    return LayoutStyle(
        padding=lay.padding,
        spacing=lay.spacing,
        line_spacing=lay.line_spacing,
        title_size=lay.title_size,
        summary_size=lay.summary_size,
        summary_lines=lay.summary_lines,
        show_summary=lay.show_summary,
        show_footer=lay.show_footer,
        footer_size=lay.footer_size,
        timestamp_format=lay.timestamp_format,
        headline_max_size=lay.headline_max_size,
        headline_min_size=lay.headline_min_size,
    )


def build_sink(cfg: AppConfig) -> OutputSink:
    if cfg.output.kind == "oepl":
        mac = cfg.output.tag or ""
        if find_tag(cfg, mac) is None:
            raise SinkError(f"No tag with MAC {mac!r} found in the config file")
        return OpenEPaperLinkSink(
            host=cfg.oepl.host,
            mac=mac,
            dither=cfg.oepl.dither,
            ttl_minutes=cfg.oepl.ttl_minutes,
            timeout_s=cfg.oepl.timeout_s,
        )
    return FileSink(cfg.output.path)


def build_context(
    cfg: AppConfig,
    sink: OutputSink | None = None,
    fetcher: FeedFetcher | None = None,
    provider: GlyphProvider | None = None,
    clock: Callable[[], datetime] | None = None,
) -> RenderContext:
    provider = provider or glyph_provider_for(cfg.fonts.kind, cfg.fonts.path)
    return RenderContext(
        canvas=CanvasSpec(width=cfg.canvas.width, height=cfg.canvas.height, bit_depth=cfg.canvas.bit_depth),
        provider=provider,
        layout=layout_for(cfg.layout.module, provider, layout_style(cfg)),
        rasterizer=Rasterizer(
            provider,
            quantize=cfg.canvas.quantize,
            threshold=cfg.canvas.threshold,
            missing_glyph=cfg.fonts.missing_glyph,
        ),
        encoder=encoder_for(cfg.output.format),
        sources=tuple(FeedSource(name=s.name or s.url, url=s.url, logo=s.logo or None) for s in cfg.feed.sources),
        fetcher=fetcher
        or FeedFetcher(timeout_s=cfg.feed.timeout_s, max_entries=cfg.feed.max_entries, user_agent=cfg.feed.user_agent),
        sink=sink,
        selection=cfg.feed.selection,
        clock=clock or _local_now,
    )


def _footer_logo(ctx: RenderContext, path: str) -> np.ndarray | None:
    height = ctx.provider.line_height(ctx.layout.style.footer_size)
    try:
        return load_logo(path, height)
    except OSError as exc:
        logger.warning("logo %s unreadable, using source name: %s", path, exc, extra={"event": "logo_unreadable"})
        return None


def render_entries(
    ctx: RenderContext,
    entries: Sequence[FeedEntry],
    source_name: str = "",
    rendered_at: datetime | None = None,
    logo: str | None = None,
) -> RenderResult:
    """Lay out, rasterize and encode onto a fresh canvas.

    Raises ``RenderError`` subclasses for invalid canvases or failed
    encodes; overflowing content, missing glyphs and unreadable logos
    never raise.
    """
    rendered_at = rendered_at or ctx.clock()
    canvas = Canvas(ctx.canvas.width, ctx.canvas.height, ctx.canvas.bit_depth)
    logo_ink = _footer_logo(ctx, logo) if logo else None
    logo_width = int(logo_ink.shape[1]) if logo_ink is not None else None
    result = ctx.layout.layout(entries, canvas.width, canvas.height, source_name, rendered_at, logo_width)
    stats = ctx.rasterizer.paint(result.blocks, canvas, logo_ink)
    frame = ctx.encoder.encode(canvas)
    return RenderResult(
        frame=frame,
        layout=result,
        entries=tuple(entries),
        source=source_name,
        rendered_at=rendered_at,
        pixels=canvas.snapshot(),
        stats=stats,
    )


def run_cycle(ctx: RenderContext, history: RenderHistory, cycle: int = 0) -> CycleOutcome:
    source = select_source(ctx.sources, ctx.selection, cycle, ctx.rng)
    same_source = history.last is not None and history.source_url == source.url

    try:
        document = ctx.fetcher.fetch(
            source,
            etag=history.etag if same_source else None,
            last_modified=history.last_modified if same_source else None,
        )
    except FeedError as exc:
        status = "reused" if history.last is not None else "no-content"
        logger.warning(
            "feed %s failed, keeping last good output: %s",
            source.name,
            exc,
            extra={"event": "cycle_feed_failed", "cycle": cycle, "source": source.name, "outcome": status},
        )
        return CycleOutcome(status=status, history=history, cycle=cycle, result=history.last, error=str(exc))

    if document.not_modified and history.last is not None:
        entries: tuple[FeedEntry, ...] = history.last.entries
        document = replace(document, etag=document.etag or history.etag)
    else:
        entries = document.entries

    result = render_entries(ctx, entries, source.name, ctx.clock(), logo=source.logo)
    logger.info(
        "rendered %d of %d entries from %s",
        result.layout.placed,
        len(entries),
        source.name,
        extra={"event": "cycle_rendered", "cycle": cycle, "source": source.name},
    )

    previous = history.last
    new_history = history.succeeded(result, document)
    if previous is not None and previous.frame.digest == result.frame.digest:
        logger.info(
            "frame unchanged, skipping output",
            extra={"event": "cycle_unchanged", "cycle": cycle, "source": source.name, "outcome": "unchanged"},
        )
        return CycleOutcome(status="unchanged", history=new_history, cycle=cycle, result=result)

    changed = None
    if previous is not None and previous.pixels.shape == result.pixels.shape:
        changed = changed_region(previous.pixels, result.pixels)

    sink_result = ctx.sink.write(result.frame) if ctx.sink is not None else None
    return CycleOutcome(
        status="rendered",
        history=new_history,
        cycle=cycle,
        result=result,
        changed=changed,
        sink_result=sink_result,
    )
