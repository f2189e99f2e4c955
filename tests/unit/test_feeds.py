import http.client
import random
import sys
import unittest
import urllib.error
from pathlib import Path
from unittest import mock

sys.path.insert(0, str(Path(__file__).resolve().parent))

from helpers import RSS, SOURCE, FakeResponse

from inkframe_feeds import (
    NEWS_HEADLINE_SOURCES,
    FeedFetcher,
    FeedFetchError,
    FeedParseError,
    FeedSource,
    clean_text,
    parse_feed,
    select_source,
    source_from_url,
)
from inkframe_feeds import fetcher as fetcher_module


class ParseFeedTests(unittest.TestCase):
    def test_parses_rss_entries(self):
        doc = parse_feed(RSS, SOURCE)
        self.assertEqual(doc.title, "Example News")
        self.assertEqual([e.title for e in doc.entries], ["Council approves & funds new tram line", "Storm warning for the coast"])
        self.assertEqual(doc.entries[0].summary, "Work starts in spring.")
        self.assertEqual(doc.entries[0].link, "https://example.test/tram")
        self.assertEqual(doc.entries[1].published_at.hour, 12)

    def test_untitled_entries_are_skipped_with_warning(self):
        doc = parse_feed(RSS, SOURCE)
        self.assertEqual(len(doc.entries), 2)
        self.assertTrue(any("without a title" in w for w in doc.warnings))

    def test_max_entries(self):
        doc = parse_feed(RSS, SOURCE, max_entries=1)
        self.assertEqual(len(doc.entries), 1)

    def test_empty_feed_is_valid(self):
        payload = b'<?xml version="1.0"?><rss version="2.0"><channel><title>Quiet</title></channel></rss>'
        doc = parse_feed(payload, SOURCE)
        self.assertEqual(doc.entries, ())

    def test_garbage_raises_parse_error(self):
        with self.assertRaises(FeedParseError):
            parse_feed(b"this is not a feed", SOURCE)

    def test_atom_feed(self):
        payload = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <entry><title>First atom entry</title><updated>2024-01-02T09:30:00Z</updated></entry>
</feed>"""
        doc = parse_feed(payload, SOURCE)
        self.assertEqual(doc.entries[0].title, "First atom entry")
        self.assertEqual(doc.entries[0].published_at.minute, 30)

    def test_clean_text(self):
        self.assertEqual(clean_text("<b>Hello</b>\n\n  &amp; bye"), "Hello & bye")
        self.assertEqual(clean_text(None), "")


class FetcherTests(unittest.TestCase):
    def test_fetch_sends_conditional_headers(self):
        seen = {}

        def fake_urlopen(req, timeout=None, context=None):
            seen["headers"] = {k.lower(): v for k, v in req.header_items()}
            seen["timeout"] = timeout
            return FakeResponse(RSS, headers={"ETag": '"v2"', "Last-Modified": "Tue, 02 Jan 2024 12:00:00 GMT"})

        with mock.patch.object(fetcher_module.urllib.request, "urlopen", fake_urlopen):
            doc = FeedFetcher(timeout_s=5).fetch(SOURCE, etag='"v1"', last_modified="yesterday")

        self.assertEqual(seen["headers"]["if-none-match"], '"v1"')
        self.assertEqual(seen["headers"]["if-modified-since"], "yesterday")
        self.assertEqual(seen["timeout"], 5)
        self.assertEqual(doc.etag, '"v2"')
        self.assertFalse(doc.not_modified)
        self.assertEqual(len(doc.entries), 2)

    def test_not_modified(self):
        def fake_urlopen(req, timeout=None, context=None):
            raise urllib.error.HTTPError(req.full_url, 304, "Not Modified", {}, None)

        with mock.patch.object(fetcher_module.urllib.request, "urlopen", fake_urlopen):
            doc = FeedFetcher().fetch(SOURCE, etag='"v1"')

        self.assertTrue(doc.not_modified)
        self.assertEqual(doc.entries, ())
        self.assertEqual(doc.etag, '"v1"')

    def test_http_error_raises_fetch_error(self):
        def fake_urlopen(req, timeout=None, context=None):
            raise urllib.error.HTTPError(req.full_url, 503, "Unavailable", {}, None)

        with mock.patch.object(fetcher_module.urllib.request, "urlopen", fake_urlopen):
            with self.assertRaises(FeedFetchError) as ctx:
                FeedFetcher().fetch(SOURCE)
        self.assertEqual(ctx.exception.status, 503)
        self.assertEqual(ctx.exception.url, SOURCE.url)

    def test_network_error_raises_fetch_error(self):
        def fake_urlopen(req, timeout=None, context=None):
            raise urllib.error.URLError("timed out")

        with mock.patch.object(fetcher_module.urllib.request, "urlopen", fake_urlopen):
            with self.assertRaises(FeedFetchError):
                FeedFetcher().fetch(SOURCE)

    def test_broken_response_raises_fetch_error(self):
        def fake_urlopen(req, timeout=None, context=None):
            raise http.client.BadStatusLine("GARBAGE")

        with mock.patch.object(fetcher_module.urllib.request, "urlopen", fake_urlopen):
            with self.assertRaises(FeedFetchError):
                FeedFetcher().fetch(SOURCE)

    def test_url_without_scheme_raises_fetch_error(self):
        source = FeedSource(name="Example", url="example.com/feed")
        with mock.patch.object(fetcher_module.urllib.request, "urlopen", side_effect=AssertionError("no request expected")):
            with self.assertRaises(FeedFetchError) as ctx:
                FeedFetcher().fetch(source)
        self.assertIn("unknown url type", str(ctx.exception))


class SourceTests(unittest.TestCase):
    def test_presets(self):
        names = [s.name for s in NEWS_HEADLINE_SOURCES]
        self.assertEqual(names, ["Tagesschau", "Spiegel", "Sueddeutsche", "Zeit"])

    def test_select_first_and_rotate(self):
        sources = list(NEWS_HEADLINE_SOURCES)
        self.assertEqual(select_source(sources, "first", cycle=3), sources[0])
        self.assertEqual(select_source(sources, "rotate", cycle=5), sources[1])

    def test_select_random_uses_rng(self):
        sources = list(NEWS_HEADLINE_SOURCES)
        first = select_source(sources, "random", rng=random.Random(7))
        again = select_source(sources, "random", rng=random.Random(7))
        self.assertEqual(first, again)
        self.assertIn(first, sources)

    def test_select_requires_sources(self):
        with self.assertRaises(ValueError):
            select_source([], "first")

    def test_source_from_url(self):
        self.assertEqual(source_from_url("https://news.example.org/rss"), FeedSource("news.example.org", "https://news.example.org/rss"))


if __name__ == "__main__":
    unittest.main()
