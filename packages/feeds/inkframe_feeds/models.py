"""Typed feed models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class FeedSource:
    name: str
    url: str
    logo: str | None = None


@dataclass(frozen=True)
class FeedEntry:
    title: str
    summary: str = ""
    published_at: datetime | None = None
    link: str = ""


@dataclass(frozen=True)
class FeedDocument:
    source: FeedSource
    title: str
    entries: tuple[FeedEntry, ...]
    fetched_at: datetime
    etag: str | None = None
    last_modified: str | None = None
    not_modified: bool = False
    warnings: tuple[str, ...] = field(default_factory=tuple)
