"""
Database models - dataclasses for sources and articles.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from ..identity import dedupe_key, display_date

MAX_BACKOFF_MULTIPLIER = 8


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Source:
    """A subscribed feed endpoint with its cache validators and error history."""
    title: str
    feed_url: str
    id: str = field(default_factory=new_id)
    site_url: str | None = None
    is_enabled: bool = True
    refresh_interval_minutes: int = 0  # 0 = use global interval
    display_order: int = 0
    last_fetched_at: datetime | None = None
    etag: str | None = None
    last_modified: str | None = None
    last_error: str | None = None
    consecutive_failures: int = 0
    tag: str | None = None  # None = uncategorized

    def mark_success(self, etag: str | None = None, last_modified: str | None = None):
        """Record a successful fetch; validators are overwritten, even with None."""
        self.last_fetched_at = utcnow()
        self.etag = etag
        self.last_modified = last_modified
        self.last_error = None
        self.consecutive_failures = 0

    def mark_failure(self, error: str):
        """Record a failed fetch. Validators are kept for the next attempt."""
        self.last_fetched_at = utcnow()
        self.last_error = error
        self.consecutive_failures += 1

    def backoff_multiplier(self) -> int:
        return min(2 ** self.consecutive_failures, MAX_BACKOFF_MULTIPLIER)

    def effective_interval(self, global_interval_minutes: int) -> int:
        if self.refresh_interval_minutes > 0:
            return self.refresh_interval_minutes
        return global_interval_minutes

    def next_refresh_date(self, global_interval_minutes: int) -> datetime | None:
        """When this source is next due, or None if it was never fetched."""
        if self.last_fetched_at is None:
            return None
        minutes = self.effective_interval(global_interval_minutes) * self.backoff_multiplier()
        return self.last_fetched_at + timedelta(minutes=minutes)


@dataclass
class Article:
    """A normalized feed entry. ``dedupe_key`` is computed once, at construction."""
    source_id: str
    link: str
    title: str
    guid_or_id: str | None = None
    published_at: datetime | None = None
    summary: str | None = None
    is_read: bool = False
    id: str = field(default_factory=new_id)
    first_seen_at: datetime = field(default_factory=utcnow)
    dedupe_key: str = ""

    def __post_init__(self):
        if not self.dedupe_key:
            self.dedupe_key = dedupe_key(
                self.guid_or_id,
                self.link,
                self.title,
                self.published_at,
                self.source_id,
            )

    @property
    def display_date(self) -> datetime:
        return display_date(self.published_at, self.first_seen_at)


@dataclass
class SourceGroup:
    """Sources sharing one tag; ``tag`` is None for the uncategorized group."""
    tag: str | None
    sources: list[Source]


@dataclass
class SaveResult:
    """Outcome of merging a batch of parsed articles into storage."""
    new_count: int
    new_articles: list[Article]
