"""Feed ingestion errors."""

from __future__ import annotations


class FeedError(Exception):
    """Base class for recoverable feed ingestion failures."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class FeedFetchError(FeedError):
    """Network failure, timeout or non-2xx HTTP status."""

    def __init__(self, message: str, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message, url=url)
        self.status = status


class FeedParseError(FeedError):
    """The payload could not be read as RSS or Atom."""
