"""Feed ingestion: sources, HTTP fetch and RSS/Atom parsing."""

from .errors import FeedError, FeedFetchError, FeedParseError
from .fetcher import FeedFetcher, clean_text, parse_feed
from .models import FeedDocument, FeedEntry, FeedSource
from .sources import NEWS_HEADLINE_SOURCES, SELECTION_STRATEGIES, select_source, source_from_url

__all__ = [
    "FeedDocument",
    "FeedEntry",
    "FeedError",
    "FeedFetchError",
    "FeedFetcher",
    "FeedParseError",
    "FeedSource",
    "NEWS_HEADLINE_SOURCES",
    "SELECTION_STRATEGIES",
    "clean_text",
    "parse_feed",
    "select_source",
    "source_from_url",
]
