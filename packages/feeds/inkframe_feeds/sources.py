"""Built-in feed sources and per-cycle source selection."""

from __future__ import annotations

import random

from .models import FeedSource

SELECTION_STRATEGIES = ("first", "rotate", "random")

# Top stories of four major German news outlets.
NEWS_HEADLINE_SOURCES: tuple[FeedSource, ...] = (
    FeedSource(name="Tagesschau", url="https://www.tagesschau.de/index~rss2.xml"),
    FeedSource(name="Spiegel", url="https://www.spiegel.de/schlagzeilen/tops/index.rss"),
    FeedSource(name="Sueddeutsche", url="https://rss.sueddeutsche.de/rss/Topthemen"),
    FeedSource(name="Zeit", url="http://newsfeed.zeit.de/index"),
)


def source_from_url(url: str) -> FeedSource:
    """Name an ad-hoc source after its host."""
    host = url.split("://", 1)[-1].split("/", 1)[0]
    return FeedSource(name=host or url, url=url)


def select_source(
    sources: list[FeedSource] | tuple[FeedSource, ...],
    strategy: str = "first",
    cycle: int = 0,
    rng: random.Random | None = None,
) -> FeedSource:
    if not sources:
        raise ValueError("At least one feed source is required")
    if strategy == "rotate":
        return sources[cycle % len(sources)]
    if strategy == "random":
        return (rng or random.Random()).choice(list(sources))
    return sources[0]
