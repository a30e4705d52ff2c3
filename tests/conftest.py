"""Shared test fixtures for RSS Aggregator tests."""

import os
import tempfile
import threading

import httpx
import pytest

from rss_aggregator.config import Settings
from rss_aggregator.coordinator import IngestionCoordinator
from rss_aggregator.database import Database
from rss_aggregator.fetch_log import FetchLog
from rss_aggregator.fetcher import FeedFetcher, FetchedDocument
from rss_aggregator.service import Aggregator

BASE_URL = "http://localhost:8082"
TEST1_URL = f"{BASE_URL}/test_feeds/test1.xml"
TEST2_URL = f"{BASE_URL}/test_feeds/test2.xml"
NOT_FOUND_URL = f"{BASE_URL}/missing.xml"
SERVER_ERROR_URL = f"{BASE_URL}/broken.xml"
NEWS_URL = "https://news.example.com/rss.xml"


SAMPLE_RSS_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed 1</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <item>
      <title>Test Item 1</title>
      <link>https://example.com/item-1</link>
      <guid>item-1</guid>
      <author>jane@example.com (Jane Doe)</author>
      <description>Description of the first item</description>
      <pubDate>Fri, 13 Feb 2026 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Test Item 2</title>
      <link>https://example.com/item-2</link>
      <guid>item-2</guid>
      <description>Description of the second item</description>
      <pubDate>Fri, 13 Feb 2026 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Feed 2</title>
  <link href="https://example.org"/>
  <subtitle>A test Atom feed</subtitle>
  <id>urn:uuid:test-feed-2</id>
  <updated>2026-02-13T12:00:00Z</updated>
  <entry>
    <title>Test Item A</title>
    <link href="https://example.org/a"/>
    <id>urn:uuid:item-a</id>
    <author><name>Alice</name></author>
    <summary>Summary of A</summary>
    <content type="html">&lt;p&gt;Body of A&lt;/p&gt;</content>
    <published>2026-02-13T10:00:00Z</published>
    <updated>2026-02-13T11:00:00Z</updated>
  </entry>
  <entry>
    <title>Test Item B</title>
    <link href="https://example.org/b"/>
    <id>urn:uuid:item-b</id>
    <summary>Summary of B</summary>
    <updated>2026-02-13T12:00:00+02:00</updated>
  </entry>
  <entry>
    <title>Test Item C</title>
    <link href="https://example.org/c"/>
    <id>urn:uuid:item-c</id>
    <summary>Summary of C</summary>
  </entry>
</feed>"""

SAMPLE_EMPTY_RSS_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Empty Feed</title>
    <link>https://example.com</link>
    <description>Nothing here yet</description>
  </channel>
</rss>"""

SAMPLE_NOT_A_FEED_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<html>
  <body>This is not a feed</body>
</html>"""


def rss_document(*items: tuple[str, str], title: str = "Generated Feed") -> bytes:
    """Build an RSS 2.0 document from (guid, title) pairs."""
    entries = "".join(
        f"<item><title>{item_title}</title>"
        f"<link>https://example.com/{guid}</link>"
        f"<guid isPermaLink=\"false\">{guid}</guid></item>"
        for guid, item_title in items
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?><rss version="2.0"><channel>'
        f"<title>{title}</title><link>https://example.com</link>{entries}"
        "</channel></rss>"
    ).encode()


class FeedServer:
    """In-memory HTTP responses keyed by URL, served through httpx.MockTransport."""

    def __init__(self):
        self.responses: dict[str, object] = {}
        self.requests: list[str] = []

    def serve(self, url: str, body: bytes, status: int = 200,
              content_type: str = "application/xml") -> None:
        self.responses[url] = (status, body, content_type)

    def fail(self, url: str, status: int) -> None:
        self.responses[url] = (status, b"", "text/plain")

    def raise_error(self, url: str, error: Exception) -> None:
        self.responses[url] = error

    def redirect(self, url: str, location: str, status: int = 302) -> None:
        self.responses[url] = lambda: httpx.Response(status, headers={"location": location})

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        response = self.responses.get(url)
        if response is None:
            return httpx.Response(404)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        status, body, content_type = response
        return httpx.Response(status, content=body, headers={"content-type": content_type})


class BlockingFetcher:
    """Serves a fixed document, blocking the first call until released."""

    def __init__(self, body: bytes):
        self.body = body
        self.started = threading.Event()
        self.release = threading.Event()
        self.active = 0
        self.max_active = 0
        self.calls = 0
        self._lock = threading.Lock()

    def fetch(self, url):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            first = self.calls == 1
        if first:
            self.started.set()
            self.release.wait(timeout=5)
        with self._lock:
            self.active -= 1
        return FetchedDocument(url, self.body, "application/rss+xml", 200)


@pytest.fixture
def tmp_db_path():
    """Provide a temporary SQLite database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(path + suffix)
        except OSError:
            pass


@pytest.fixture
def db(tmp_db_path):
    """A connected database on a temporary file."""
    database = Database(tmp_db_path)
    database.connect()
    yield database
    database.close()


@pytest.fixture
def feed_server():
    """Mock feed server preloaded with the two test feeds, a 404 and a 500."""
    server = FeedServer()
    server.serve(TEST1_URL, SAMPLE_RSS_XML, content_type="application/rss+xml")
    server.serve(TEST2_URL, SAMPLE_ATOM_XML, content_type="application/atom+xml")
    server.fail(NOT_FOUND_URL, 404)
    server.fail(SERVER_ERROR_URL, 500)
    return server


@pytest.fixture
def fetcher(feed_server):
    """A FeedFetcher whose HTTP traffic goes to the mock feed server."""
    with FeedFetcher(timeout=5, transport=httpx.MockTransport(feed_server.handler)) as f:
        yield f


@pytest.fixture
def settings(tmp_db_path):
    return Settings(db_path=tmp_db_path)


@pytest.fixture
def coordinator(db, fetcher):
    return IngestionCoordinator(db, fetcher, fetch_log=FetchLog(), max_workers=4)


@pytest.fixture
def aggregator(db, coordinator, settings):
    return Aggregator(db, coordinator, settings)


@pytest.fixture
def sample_rss_xml():
    """Sample valid RSS 2.0 XML."""
    return SAMPLE_RSS_XML


@pytest.fixture
def sample_atom_xml():
    """Sample valid Atom XML."""
    return SAMPLE_ATOM_XML


@pytest.fixture
def sample_not_a_feed_xml():
    """Sample XML that is not a feed."""
    return SAMPLE_NOT_A_FEED_XML
