"""
Feed Parser - Convert raw RSS/Atom/JSON Feed payloads into articles.

Handles:
- Format detection from the first 1024 bytes
- RSS 2.0 and Atom 1.0 via feedparser
- JSON Feed 1.x
- Dropping entries without a usable link
"""

import io
import json
import logging
import time
from datetime import datetime, timezone
from enum import Enum

import feedparser
from feedparser.datetimes import _parse_date

from .database.models import Article
from .exceptions import ParseError, ParseErrorKind

logger = logging.getLogger(__name__)

DETECTION_WINDOW = 1024
UNTITLED = "(untitled)"

# Bozo conditions that don't make a document unusable
_BENIGN_BOZO = (feedparser.CharacterEncodingOverride, feedparser.NonXMLContentType)


class FeedFormat(str, Enum):
    RSS = "rss"
    ATOM = "atom"
    JSON = "json"
    UNKNOWN = "unknown"


def detect_format(data: bytes) -> FeedFormat:
    """Detect the feed type; declarations can appear late, so look past a short prefix."""
    head = data[:DETECTION_WINDOW].decode("utf-8", errors="ignore").lower()

    if head.lstrip("\ufeff").strip().startswith("{"):
        return FeedFormat.JSON
    if "<rss" in head:
        return FeedFormat.RSS
    if "<feed" in head:
        return FeedFormat.ATOM
    return FeedFormat.UNKNOWN


def _struct_to_datetime(value: time.struct_time | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def _parse_json_date(value) -> datetime | None:
    # Same date handlers feedparser applies to RSS/Atom, normalized to UTC
    if not value or not isinstance(value, str):
        return None
    return _struct_to_datetime(_parse_date(value.strip()))


def _json_text(value) -> str | None:
    """A JSON Feed text field, or None when it is missing or not a string."""
    if isinstance(value, str) and value.strip():
        return value
    return None


def _alternate_link(entry, fallback_to_first: bool) -> str:
    """The entry's rel=alternate link, or optionally its first link of any kind."""
    links = [link for link in entry.get("links", []) if link.get("href")]
    for link in links:
        if link.get("rel", "alternate") == "alternate":
            return link["href"]
    if fallback_to_first and links:
        return links[0]["href"]
    return ""


def _entry_summary(entry) -> str | None:
    if entry.get("summary"):
        return entry.summary
    if entry.get("content"):
        return entry.content[0].get("value") or None
    return None


class FeedParser:
    """Parses feed payloads into unsaved ``Article`` candidates."""

    def parse(self, data: bytes, source_id: str) -> list[Article]:
        """
        Parse a feed document.

        Raises:
            ParseError: UNRECOGNIZED_FORMAT if the payload isn't RSS, Atom or
                JSON Feed; MALFORMED if the document itself can't be read.
                Individual unusable entries are dropped, never raised.
        """
        feed_format = detect_format(data)
        logger.debug(f"Detected {feed_format.value} feed ({len(data)} bytes) for source {source_id}")

        if feed_format == FeedFormat.UNKNOWN:
            raise ParseError(ParseErrorKind.UNRECOGNIZED_FORMAT)

        if feed_format == FeedFormat.JSON:
            articles = self._parse_json(self._load_json(data), source_id)
        else:
            parsed = self._load_xml(data)
            if feed_format == FeedFormat.RSS:
                articles = self._parse_rss(parsed, source_id)
            else:
                articles = self._parse_atom(parsed, source_id)

        logger.debug(f"Parsed {len(articles)} articles for source {source_id}")
        return articles

    def extract_title(self, data: bytes) -> str | None:
        """Feed-level title, or None if the payload has none or can't be parsed."""
        feed_format = detect_format(data)
        try:
            if feed_format == FeedFormat.JSON:
                title = self._load_json(data).get("title")
            elif feed_format != FeedFormat.UNKNOWN:
                title = self._load_xml(data).feed.get("title")
            else:
                return None
        except ParseError:
            return None
        return title.strip() if isinstance(title, str) and title.strip() else None

    # ─────────────────────────────────────────────────────────────
    # Document loading
    # ─────────────────────────────────────────────────────────────

    def _load_xml(self, data: bytes):
        parsed = feedparser.parse(io.BytesIO(data))
        error = parsed.get("bozo_exception")
        if parsed.bozo and not parsed.entries and not isinstance(error, _BENIGN_BOZO):
            raise ParseError(ParseErrorKind.MALFORMED, str(error))
        return parsed

    def _load_json(self, data: bytes) -> dict:
        try:
            document = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(ParseErrorKind.MALFORMED, str(e))
        if not isinstance(document, dict):
            raise ParseError(ParseErrorKind.MALFORMED, "JSON feed root is not an object")
        return document

    # ─────────────────────────────────────────────────────────────
    # Format-specific extraction
    # ─────────────────────────────────────────────────────────────

    def _parse_rss(self, parsed, source_id: str) -> list[Article]:
        articles = []
        for entry in parsed.entries:
            # feedparser copies a permalink guid into ``link``; only a real <link> counts
            link = _alternate_link(entry, fallback_to_first=False)
            if not link:
                continue

            articles.append(Article(
                source_id=source_id,
                guid_or_id=entry.get("id") or link,
                link=link,
                title=entry.get("title") or UNTITLED,
                published_at=_struct_to_datetime(
                    entry.get("published_parsed") or entry.get("updated_parsed")
                ),
                summary=_entry_summary(entry),
            ))
        return articles

    def _parse_atom(self, parsed, source_id: str) -> list[Article]:
        articles = []
        for entry in parsed.entries:
            link = _alternate_link(entry, fallback_to_first=True)
            if not link:
                continue

            articles.append(Article(
                source_id=source_id,
                guid_or_id=entry.get("id") or None,
                link=link,
                title=entry.get("title") or UNTITLED,
                published_at=_struct_to_datetime(
                    entry.get("published_parsed") or entry.get("updated_parsed")
                ),
                summary=_entry_summary(entry),
            ))
        return articles

    def _parse_json(self, document: dict, source_id: str) -> list[Article]:
        items = document.get("items") or []
        if not isinstance(items, list):
            raise ParseError(ParseErrorKind.MALFORMED, "JSON feed 'items' is not a list")

        articles = []
        for item in items:
            if not isinstance(item, dict):
                continue
            link = item.get("url") or item.get("external_url")
            if not link or not isinstance(link, str):
                continue

            item_id = item.get("id")
            if isinstance(item_id, bool) or not isinstance(item_id, (str, int)):
                item_id = None
            articles.append(Article(
                source_id=source_id,
                guid_or_id=str(item_id) if item_id not in (None, "") else None,
                link=link,
                title=_json_text(item.get("title")) or UNTITLED,
                published_at=(
                    _parse_json_date(item.get("date_published"))
                    or _parse_json_date(item.get("date_modified"))
                ),
                summary=_json_text(item.get("summary")) or _json_text(item.get("content_text")),
            ))
        return articles
