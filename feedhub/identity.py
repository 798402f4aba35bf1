"""
Article identity - stable dedupe keys and display dates for feed entries.
"""

import hashlib
from datetime import datetime, timezone


def iso8601(value: datetime) -> str:
    """Format a timestamp as second-precision UTC ISO-8601 (``2024-01-01T00:00:00Z``)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def dedupe_key(
    guid_or_id: str | None,
    link: str | None,
    title: str,
    published_at: datetime | None,
    source_id: str,
) -> str:
    """
    Compute the identity used to recognize the same article across fetches.

    Priority: guid, then link, then a SHA-256 of
    ``"{title}-{published_at}-{source_id}"``.
    """
    if guid_or_id:
        return guid_or_id

    if link:
        return link

    published = iso8601(published_at) if published_at else ""
    combined = f"{title}-{published}-{source_id}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


def display_date(published_at: datetime | None, first_seen_at: datetime) -> datetime:
    """Effective sort timestamp: published date if known, else first-seen date."""
    return published_at if published_at is not None else first_seen_at
