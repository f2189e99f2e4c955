"""HTTP feed fetching and RSS/Atom parsing into immutable entries."""

from __future__ import annotations

import html
import http.client
import logging
import os
import re
import ssl
import urllib.error
import urllib.request
from datetime import datetime, timezone
from typing import Any

import certifi
import feedparser

from .errors import FeedFetchError, FeedParseError
from .models import FeedDocument, FeedEntry, FeedSource

logger = logging.getLogger("inkframe.feeds")

USER_AGENT = "inkframe/0.1 (+https://github.com/inkframe/inkframe)"
ACCEPT = "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.9, */*;q=0.8"

_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def _build_ssl_context() -> ssl.SSLContext:
    """TLS context for feed downloads with explicit CA handling."""
    if os.environ.get("INKFRAME_ALLOW_INSECURE_TLS", "").strip() == "1":
        return ssl._create_unverified_context()

    ca_bundle = os.environ.get("INKFRAME_CA_BUNDLE", "").strip()
    if ca_bundle:
        return ssl.create_default_context(cafile=ca_bundle)

    return ssl.create_default_context(cafile=certifi.where())


def clean_text(value: str | None) -> str:
    """Strip markup and entities and collapse whitespace to single spaces."""
    if not value:
        return ""
    text = _TAG_RE.sub(" ", value)
    text = html.unescape(text)
    return _SPACE_RE.sub(" ", text).strip()


def _entry_time(entry: Any) -> datetime | None:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue
    return None


def parse_feed(payload: bytes, source: FeedSource, max_entries: int = 20) -> FeedDocument:
    parsed = feedparser.parse(payload)
    raw_entries = list(parsed.get("entries", []))

    if parsed.get("bozo") and not raw_entries:
        reason = parsed.get("bozo_exception")
        raise FeedParseError(f"Could not parse feed from {source.name}: {reason}", url=source.url)
    if not raw_entries and not parsed.get("version"):
        raise FeedParseError(f"{source.name} did not return an RSS or Atom document", url=source.url)

    entries: list[FeedEntry] = []
    skipped = 0
    for raw in raw_entries:
        title = clean_text(raw.get("title"))
        if not title:
            skipped += 1
            continue
        entries.append(
            FeedEntry(
                title=title,
                summary=clean_text(raw.get("summary") or raw.get("description")),
                published_at=_entry_time(raw),
                link=str(raw.get("link") or ""),
            )
        )
        if len(entries) >= max_entries:
            break

    warnings: list[str] = []
    if skipped:
        warnings.append(f"skipped {skipped} entries without a title")
    if parsed.get("bozo"):
        warnings.append(f"feed is not well-formed: {parsed.get('bozo_exception')}")

    feed_info = parsed.get("feed", {}) or {}
    return FeedDocument(
        source=source,
        title=clean_text(feed_info.get("title")) or source.name,
        entries=tuple(entries),
        fetched_at=datetime.now(timezone.utc),
        warnings=tuple(warnings),
    )


class FeedFetcher:
    """Blocking feed client; every request is bounded by ``timeout_s``."""

    def __init__(self, timeout_s: float = 20.0, max_entries: int = 20, user_agent: str = USER_AGENT) -> None:
        self.timeout_s = timeout_s
        self.max_entries = max_entries
        self.user_agent = user_agent

    def _request(self, url: str, etag: str | None, last_modified: str | None) -> urllib.request.Request:
        req = urllib.request.Request(url, headers={"User-Agent": self.user_agent, "Accept": ACCEPT})
        if etag:
            req.add_header("If-None-Match", etag)
        if last_modified:
            req.add_header("If-Modified-Since", last_modified)
        return req

    def fetch(self, source: FeedSource, etag: str | None = None, last_modified: str | None = None) -> FeedDocument:
        logger.info("fetching feed %s", source.name, extra={"event": "feed_fetch_start"})

        try:
            req = self._request(source.url, etag, last_modified)
            with urllib.request.urlopen(req, timeout=self.timeout_s, context=_build_ssl_context()) as resp:
                payload = resp.read()
                resp_etag = resp.headers.get("ETag")
                resp_modified = resp.headers.get("Last-Modified")
        except urllib.error.HTTPError as exc:
            if exc.code == 304:
                logger.info("feed %s not modified", source.name, extra={"event": "feed_not_modified"})
                return FeedDocument(
                    source=source,
                    title=source.name,
                    entries=(),
                    fetched_at=datetime.now(timezone.utc),
                    etag=etag,
                    last_modified=last_modified,
                    not_modified=True,
                )
            raise FeedFetchError(
                f"{source.name} returned HTTP {exc.code}", url=source.url, status=exc.code
            ) from exc
        except (urllib.error.URLError, OSError, http.client.HTTPException, ValueError) as exc:
            # ValueError covers unknown url types and InvalidURL.
            raise FeedFetchError(f"Failed to request data from {source.name}: {exc}", url=source.url) from exc

        document = parse_feed(payload, source, max_entries=self.max_entries)
        for warning in document.warnings:
            logger.warning("%s: %s", source.name, warning, extra={"event": "feed_warning"})
        logger.info(
            "fetched %d entries from %s",
            len(document.entries),
            source.name,
            extra={"event": "feed_fetch_ok"},
        )
        return FeedDocument(
            source=document.source,
            title=document.title,
            entries=document.entries,
            fetched_at=document.fetched_at,
            etag=resp_etag,
            last_modified=resp_modified,
            warnings=document.warnings,
        )
