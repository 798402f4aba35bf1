"""
Feed error taxonomy and HTTP lookup helpers.

Every error raised by the fetch/parse pipeline is a ``FeedError``. Its
``short_description`` is the classification recorded on a source when a
refresh fails.
"""

from enum import Enum
from typing import TypeVar

from fastapi import HTTPException

T = TypeVar("T")


class FeedError(Exception):
    """Base class for fetch, parse and validation failures."""

    short_description = "Unknown error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.short_description)


class InvalidURLError(FeedError):
    """Malformed feed or site URL supplied by the caller."""

    short_description = "Invalid URL"

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid URL: {url}")


class FetchTimeoutError(FeedError):
    """Network operation exceeded its deadline."""

    short_description = "Request timed out"


class NetworkError(FeedError):
    """Transport-level failure other than a timeout."""

    short_description = "Network error"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Network error: {detail}")


class HTTPStatusError(FeedError):
    """Non-2xx, non-304 HTTP response."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP error {status_code}")

    @property
    def short_description(self) -> str:
        return f"HTTP {self.status_code}"


class ResponseTooLargeError(FeedError):
    """Response body exceeded the configured size limit."""

    short_description = "Response too large"

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Response exceeds {limit} bytes")


class UnsupportedContentTypeError(FeedError):
    """Declared Content-Type is not a feed, text or HTML type."""

    short_description = "Unsupported content type"

    def __init__(self, content_type: str):
        self.content_type = content_type
        super().__init__(f"Unsupported content type: {content_type}")


class ParseErrorKind(str, Enum):
    UNRECOGNIZED_FORMAT = "unrecognized_format"
    MALFORMED = "malformed"


class ParseError(FeedError):
    """Feed payload was unrecognized or malformed as a whole document."""

    short_description = "Parse failed"

    def __init__(self, kind: ParseErrorKind, detail: str | None = None):
        self.kind = kind
        self.detail = detail
        if kind == ParseErrorKind.UNRECOGNIZED_FORMAT:
            message = "Unrecognized feed format"
        else:
            message = f"Malformed feed: {detail}"
        super().__init__(message)


class FeedNotFoundError(FeedError):
    """No candidate feed link was found on a page."""

    short_description = "Feed not found"


class DuplicateSourceError(FeedError):
    """The feed URL is already subscribed."""

    short_description = "Already subscribed"

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Already subscribed: {url}")


class UnknownFeedError(FeedError):
    """Catch-all for unexpected underlying failures."""

    short_description = "Unknown error"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Unknown error: {detail}")


def describe_error(error: Exception) -> str:
    """Short, human-readable classification for storing on a source."""
    if isinstance(error, FeedError):
        return error.short_description
    return UnknownFeedError(str(error)).short_description


def require_resource(resource: T | None, detail: str = "Resource not found") -> T:
    """
    Raise 404 if resource is None, otherwise return the resource.

    Usage:
        source = require_resource(db.fetch_source(id), "Source not found")
    """
    if resource is None:
        raise HTTPException(status_code=404, detail=detail)
    return resource


def require_source(source: T | None) -> T:
    """Raise 404 if source is None."""
    return require_resource(source, "Source not found")


def require_article(article: T | None) -> T:
    """Raise 404 if article is None."""
    return require_resource(article, "Article not found")
