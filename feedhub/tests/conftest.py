"""
Pytest fixtures for feedhub tests.
"""

import asyncio
import tempfile
from pathlib import Path

import aiohttp
import pytest
from fastapi.testclient import TestClient

from feedhub.config import AppServices, Settings
from feedhub.database import Article, Database, Source
from feedhub.events import ChangeNotifier
from feedhub.fetcher import FeedFetcher
from feedhub.manager import FeedManager
from feedhub.server import app
from feedhub.services import SourceService


RSS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>{title}</title>
    <link>https://example.com/</link>
    {items}
  </channel>
</rss>
"""

RSS_ITEM_TEMPLATE = """<item>
      <title>{title}</title>
      <link>{link}</link>
      <guid isPermaLink="false">{guid}</guid>
      <pubDate>{pub_date}</pubDate>
    </item>"""


def make_rss(title: str = "Example Feed", items: list[dict] | None = None) -> bytes:
    """Build an RSS 2.0 document from item dicts with title/link/guid/pub_date."""
    rendered = [
        RSS_ITEM_TEMPLATE.format(
            title=item.get("title", "Untitled"),
            link=item["link"],
            guid=item.get("guid", item["link"]),
            pub_date=item.get("pub_date", "Mon, 01 Jan 2024 00:00:00 GMT"),
        )
        for item in (items or [])
    ]
    return RSS_TEMPLATE.format(title=title, items="\n    ".join(rendered)).encode("utf-8")


# ─────────────────────────────────────────────────────────────
# Fake HTTP transport
# ─────────────────────────────────────────────────────────────

class FakeContent:
    def __init__(self, body: bytes):
        self._body = body

    async def iter_chunked(self, size: int):
        for start in range(0, len(self._body), size):
            yield self._body[start:start + size]


class FakeResponse:
    """Stands in for an aiohttp response."""

    def __init__(self, status: int = 200, body: bytes = b"", headers: dict | None = None):
        self.status = status
        self.headers = headers if headers is not None else {"Content-Type": "application/rss+xml"}
        self.content = FakeContent(body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeTransport:
    """
    Routes URLs to canned responses and records every request.

    A route may be a FakeResponse or an exception instance to raise. Tracks
    the peak number of requests in flight at once.
    """

    def __init__(self, delay: float = 0):
        self.routes: dict[str, FakeResponse | Exception] = {}
        self.requests: list[tuple[str, dict]] = []
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    def add(self, url: str, response: FakeResponse | Exception):
        self.routes[url] = response

    def session_factory(self):
        return FakeSession(self)


class FakeSession:
    def __init__(self, transport: FakeTransport):
        self._transport = transport

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get(self, url, headers=None, timeout=None, allow_redirects=True):
        return _FakeRequest(self._transport, url, headers or {})


class _FakeRequest:
    def __init__(self, transport: FakeTransport, url: str, headers: dict):
        self._transport = transport
        self._url = url
        self._headers = headers

    async def __aenter__(self):
        transport = self._transport
        transport.requests.append((self._url, self._headers))
        transport.in_flight += 1
        transport.max_in_flight = max(transport.max_in_flight, transport.in_flight)
        try:
            if transport.delay:
                await asyncio.sleep(transport.delay)
            route = transport.routes.get(self._url)
            if route is None:
                raise aiohttp.ClientConnectionError(f"no route for {self._url}")
            if isinstance(route, Exception):
                raise route
            return route
        finally:
            transport.in_flight -= 1

    async def __aexit__(self, *exc):
        return False


# ─────────────────────────────────────────────────────────────
# Database and services
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def temp_db_path():
    """Create a temporary database file path."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d) / "feedhub.db"


@pytest.fixture
def test_db(temp_db_path):
    """Create a test database instance."""
    db = Database(temp_db_path)
    yield db


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def fetcher(transport):
    return FeedFetcher(concurrency=5, timeout=5, session_factory=transport.session_factory)


@pytest.fixture
def events():
    return ChangeNotifier()


@pytest.fixture
def manager(test_db, fetcher, events):
    return FeedManager(test_db, fetcher, settings=Settings(), events=events)


@pytest.fixture
def source_service(test_db, fetcher, events):
    return SourceService(test_db, fetcher, events=events)


@pytest.fixture
def services(test_db, fetcher, manager, source_service, events):
    return AppServices(
        db=test_db,
        fetcher=fetcher,
        manager=manager,
        sources=source_service,
        events=events,
        settings=manager.settings,
    )


@pytest.fixture
def client(services):
    """Create a test client with isolated database and fake transport."""
    original = getattr(app.state, "services", None)
    app.state.services = services

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.state.services = original


@pytest.fixture
def client_with_data(client, test_db):
    """Test client with two sources and some articles pre-populated."""
    tech = test_db.add_source(Source(
        title="Tech Feed",
        feed_url="https://tech.example.com/feed.xml",
        tag="Tech",
    ))
    news = test_db.add_source(Source(
        title="News Feed",
        feed_url="https://news.example.com/feed.xml",
    ))

    saved = test_db.save_items([
        Article(source_id=tech.id, link="https://tech.example.com/1", title="Tech 1", guid_or_id="t1"),
        Article(source_id=tech.id, link="https://tech.example.com/2", title="Tech 2", guid_or_id="t2"),
    ], tech.id)
    test_db.save_items([
        Article(source_id=news.id, link="https://news.example.com/1", title="News 1", guid_or_id="n1"),
    ], news.id)

    # Mark one as read
    test_db.mark_as_read(saved.new_articles[0].id)

    yield client, {
        "tech_id": tech.id,
        "news_id": news.id,
        "article_ids": [a.id for a in saved.new_articles],
    }


@pytest.fixture
def rss():
    """Factory for RSS documents."""
    return make_rss


@pytest.fixture
def feed_response():
    """Factory for fake HTTP responses."""
    return FakeResponse


@pytest.fixture
def transport_factory():
    """Factory for fake transports, e.g. with a per-request delay."""
    return FakeTransport
