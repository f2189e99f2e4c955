"""Fakes shared by the unit tests."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
for _pkg in ("packages/feeds", "packages/renderer", "packages/output", "packages/core", "apps/cli"):
    sys.path.insert(0, str(ROOT / _pkg))

import numpy as np

from inkframe_core.config import AppConfig, FeedSourceConfig
from inkframe_core.pipeline import build_context
from inkframe_feeds import FeedDocument, FeedEntry, FeedSource
from inkframe_output import OutputSink, SinkError, SinkResult
from inkframe_renderer import Glyph, GlyphProvider

SOURCE = FeedSource(name="Example", url="https://example.test/feed.xml")

RSS = b"""<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0">
  <channel>
    <title>Example News</title>
    <item>
      <title>Council approves &amp; funds new tram line</title>
      <description>&lt;p&gt;Work starts   in spring.&lt;/p&gt;</description>
      <pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
      <link>https://example.test/tram</link>
    </item>
    <item>
      <title>Storm warning for the coast</title>
      <pubDate>Tue, 02 Jan 2024 12:00:00 GMT</pubDate>
    </item>
    <item>
      <description>No title here</description>
    </item>
  </channel>
</rss>
"""


class FixedGlyphProvider(GlyphProvider):
    """Every glyph is a solid bar ``size // 2`` wide and one line tall."""

    kind = "fixed"

    def __init__(self, missing: str = "") -> None:
        self.missing = set(missing)

    def advance(self, ch: str, size: int) -> float:
        return float(size // 2)

    def line_height(self, size: int) -> int:
        return size

    def has_glyph(self, ch: str, size: int) -> bool:
        return ch not in self.missing

    def glyph(self, ch: str, size: int) -> Glyph:
        bitmap = np.full((max(1, size - 2), max(1, size // 2 - 1)), 255, dtype=np.uint8)
        return Glyph(bitmap=bitmap, left=0, top=1, advance=float(size // 2))


def entry(title: str, minute: int | None = None, summary: str = "") -> FeedEntry:
    published = datetime(2024, 1, 2, 12, minute, tzinfo=timezone.utc) if minute is not None else None
    return FeedEntry(title=title, summary=summary, published_at=published)


ENTRIES = [entry("Council approves new tram line", minute=10), entry("Storm warning for the coast", minute=5)]


def document(entries, etag: str | None = None, not_modified: bool = False, source: FeedSource = SOURCE) -> FeedDocument:
    return FeedDocument(
        source=source,
        title=source.name,
        entries=tuple(entries),
        fetched_at=datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc),
        etag=etag,
        not_modified=not_modified,
    )


class ScriptedFetcher:
    """Returns (or raises) the scripted results in order and records calls."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, str | None, str | None]] = []

    def fetch(self, source, etag=None, last_modified=None):
        self.calls.append((source.url, etag, last_modified))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class RecordingSink(OutputSink):
    kind = "memory"

    def __init__(self) -> None:
        self.frames = []

    def describe(self) -> str:
        return "memory"

    def write(self, frame) -> SinkResult:
        self.frames.append(frame)
        return SinkResult(sink=self.kind, target="memory", bytes_written=len(frame.data))


class FakeResponse:
    def __init__(self, body: bytes = b"", status: int = 200, headers: dict[str, str] | None = None) -> None:
        self.body = body
        self.status = status
        self.headers = headers or {}

    def read(self) -> bytes:
        return self.body

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


class FailingSink(RecordingSink):
    def write(self, frame):
        raise SinkError("disk full", target="memory")


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 2, 13, 5, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def make_context(*results, sink=None, clock=None, **layout):
    """Render context over the fixed-metric font, a scripted fetcher and an in-memory sink."""
    cfg = AppConfig()
    cfg.feed.sources = [FeedSourceConfig(name=SOURCE.name, url=SOURCE.url)]
    for key, value in layout.items():
        setattr(cfg.layout, key, value)
    fetcher = ScriptedFetcher(*results)
    ctx = build_context(
        cfg,
        sink=sink if sink is not None else RecordingSink(),
        fetcher=fetcher,
        provider=FixedGlyphProvider(),
        clock=clock or Clock(),
    )
    return ctx, fetcher
