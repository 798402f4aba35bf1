"""
Feed Fetcher - Conditional, bounded-concurrency HTTP GET for feed sources.

Handles:
- ETag / Last-Modified conditional requests (304 handling)
- A process-wide cap on in-flight requests (callers wait, never rejected)
- Per-request timeout, response size limit and Content-Type allow-list
- Mapping transport failures onto the FeedError taxonomy
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlparse

import aiohttp

from .database.models import Source
from .exceptions import (
    FeedError,
    FetchTimeoutError,
    HTTPStatusError,
    InvalidURLError,
    NetworkError,
    ResponseTooLargeError,
    UnknownFeedError,
    UnsupportedContentTypeError,
)

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5
DEFAULT_TIMEOUT = 15
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_USER_AGENT = "FeedHub/1.0"

CHUNK_SIZE = 64 * 1024

# Feed MIME types, plus HTML for discovery pages
ALLOWED_CONTENT_TYPES = {
    "application/rss+xml",
    "application/atom+xml",
    "application/rdf+xml",
    "application/x-rss+xml",
    "application/xml",
    "application/feed+json",
    "application/json",
    "text/xml",
    "text/html",
    "application/xhtml+xml",
}

ACCEPT_HEADER = (
    "application/rss+xml, application/atom+xml, application/feed+json, "
    "application/xml;q=0.9, text/xml;q=0.9, */*;q=0.8"
)


@dataclass(frozen=True)
class FetchSuccess:
    """200 response: new feed bytes plus the validators to store for next time."""
    data: bytes
    etag: str | None = None
    last_modified: str | None = None


@dataclass(frozen=True)
class NotModified:
    """304 response: the cached copy is still current."""


FetchResult = FetchSuccess | NotModified


def validate_feed_url(url: str) -> str:
    """Reject anything that isn't an absolute http(s) URL."""
    parsed = urlparse(url.strip()) if url else None
    if not parsed or parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidURLError(url)
    return url.strip()


def is_allowed_content_type(header: str | None) -> bool:
    """Missing headers and any text/* type are accepted permissively."""
    if not header:
        return True
    mime = header.split(";", 1)[0].strip().lower()
    if not mime or mime.startswith("text/"):
        return True
    return mime in ALLOWED_CONTENT_TYPES


class FeedFetcher:
    """Fetches feed documents; one instance is shared by every refresh."""

    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: float = DEFAULT_TIMEOUT,
        max_bytes: int = DEFAULT_MAX_BYTES,
        user_agent: str | None = None,
        session_factory: Callable[..., aiohttp.ClientSession] = aiohttp.ClientSession,
    ):
        self.concurrency = concurrency
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self._session_factory = session_factory
        self._semaphore = asyncio.Semaphore(concurrency)

    def _build_headers(self, etag: str | None, last_modified: str | None) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent, "Accept": ACCEPT_HEADER}
        if etag:
            headers["If-None-Match"] = etag
        if last_modified:
            headers["If-Modified-Since"] = last_modified
        return headers

    async def fetch(
        self,
        url: str,
        etag: str | None = None,
        last_modified: str | None = None,
    ) -> FetchResult:
        """
        Fetch a feed URL, conditionally if validators are given.

        Waits for a free slot when the concurrency cap is reached.

        Raises:
            FeedError: InvalidURLError, FetchTimeoutError, NetworkError,
                HTTPStatusError, ResponseTooLargeError or
                UnsupportedContentTypeError.
        """
        url = validate_feed_url(url)
        headers = self._build_headers(etag, last_modified)

        async with self._semaphore:
            try:
                async with self._session_factory() as session:
                    async with session.get(
                        url,
                        headers=headers,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                        allow_redirects=True
                    ) as resp:
                        return await self._read_response(resp)
            except FeedError:
                raise
            except asyncio.TimeoutError:
                raise FetchTimeoutError()
            except aiohttp.InvalidURL:
                raise InvalidURLError(url)
            except (aiohttp.ClientError, OSError) as e:
                raise NetworkError(str(e) or type(e).__name__)

    async def _read_response(self, resp) -> FetchResult:
        if resp.status == 304:
            return NotModified()
        if resp.status != 200:
            raise HTTPStatusError(resp.status)

        content_type = resp.headers.get("Content-Type")
        if not is_allowed_content_type(content_type):
            raise UnsupportedContentTypeError(content_type)

        declared_length = resp.headers.get("Content-Length")
        if declared_length and declared_length.isdigit() and int(declared_length) > self.max_bytes:
            raise ResponseTooLargeError(self.max_bytes)

        body = bytearray()
        async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
            body.extend(chunk)
            if len(body) > self.max_bytes:
                raise ResponseTooLargeError(self.max_bytes)

        return FetchSuccess(
            data=bytes(body),
            etag=resp.headers.get("ETag"),
            last_modified=resp.headers.get("Last-Modified"),
        )

    async def fetch_source(self, source: Source) -> FetchResult:
        return await self.fetch(source.feed_url, source.etag, source.last_modified)

    async def fetch_multiple(
        self,
        sources: list[Source]
    ) -> list[tuple[Source, FetchResult | FeedError]]:
        """
        Fetch every enabled source concurrently.

        Returns one (source, result-or-error) pair per enabled source, in
        input order; a failure is returned in place, never raised.
        """
        enabled = [source for source in sources if source.is_enabled]
        tasks = [self.fetch_safe(source) for source in enabled]
        results = await asyncio.gather(*tasks)
        return list(zip(enabled, results))

    async def fetch_safe(self, source: Source) -> FetchResult | FeedError:
        """Fetch a source, returning the error on failure instead of raising."""
        try:
            return await self.fetch_source(source)
        except FeedError as e:
            return e
        except Exception as e:
            logger.exception(f"Unexpected error fetching {source.feed_url}")
            return UnknownFeedError(str(e))
