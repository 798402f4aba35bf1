"""
Database row converters - convert SQLite rows to dataclasses and back.
"""

import sqlite3
from datetime import datetime, timezone

from .models import Article, Source


def to_db_timestamp(value: datetime | None) -> str | None:
    """
    Encode a timestamp as UTC ISO-8601 text with fixed microsecond precision.

    A fixed width keeps lexicographic order equal to chronological order.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def row_to_source(row: sqlite3.Row) -> Source:
    """Convert a database row to a Source."""
    return Source(
        id=row["id"],
        title=row["title"],
        site_url=row["site_url"],
        feed_url=row["feed_url"],
        is_enabled=bool(row["is_enabled"]),
        refresh_interval_minutes=row["refresh_interval_minutes"] or 0,
        display_order=row["display_order"] or 0,
        last_fetched_at=from_db_timestamp(row["last_fetched_at"]),
        etag=row["etag"],
        last_modified=row["last_modified"],
        last_error=row["last_error"],
        consecutive_failures=row["consecutive_failures"] or 0,
        tag=row["tag"],
    )


def row_to_article(row: sqlite3.Row) -> Article:
    """Convert a database row to an Article. The stored dedupe key is kept as-is."""
    return Article(
        id=row["id"],
        source_id=row["source_id"],
        guid_or_id=row["guid_or_id"],
        link=row["link"],
        title=row["title"],
        published_at=from_db_timestamp(row["published_at"]),
        summary=row["summary"],
        is_read=bool(row["is_read"]),
        first_seen_at=from_db_timestamp(row["first_seen_at"]) or datetime.now(timezone.utc),
        dedupe_key=row["dedupe_key"],
    )


def source_to_params(source: Source) -> dict:
    return {
        "id": source.id,
        "title": source.title,
        "site_url": source.site_url,
        "feed_url": source.feed_url,
        "is_enabled": source.is_enabled,
        "refresh_interval_minutes": source.refresh_interval_minutes,
        "display_order": source.display_order,
        "last_fetched_at": to_db_timestamp(source.last_fetched_at),
        "etag": source.etag,
        "last_modified": source.last_modified,
        "last_error": source.last_error,
        "consecutive_failures": source.consecutive_failures,
        "tag": source.tag,
    }


def article_to_params(article: Article) -> dict:
    return {
        "id": article.id,
        "source_id": article.source_id,
        "guid_or_id": article.guid_or_id,
        "link": article.link,
        "title": article.title,
        "published_at": to_db_timestamp(article.published_at),
        "summary": article.summary,
        "is_read": article.is_read,
        "first_seen_at": to_db_timestamp(article.first_seen_at),
        "dedupe_key": article.dedupe_key,
    }
