"""
Source service: user-initiated source management.

Unlike batch refreshes, failures here propagate to the caller as
``FeedError`` so they can be shown to the user.
"""

import logging
from dataclasses import dataclass
from urllib.parse import urlparse

from ..database import Article, Database, Source
from ..events import ChangeNotifier
from ..exceptions import DuplicateSourceError, UnknownFeedError
from ..feeds import FeedParser
from ..fetcher import FeedFetcher, FetchSuccess, validate_feed_url

logger = logging.getLogger(__name__)


@dataclass
class ValidatedFeed:
    """A feed that was fetched and parsed successfully."""
    url: str
    title: str
    articles: list[Article]
    etag: str | None = None
    last_modified: str | None = None


class SourceService:
    """Service for source subscription, editing and ordering."""

    def __init__(
        self,
        db: Database,
        fetcher: FeedFetcher,
        parser: FeedParser | None = None,
        events: ChangeNotifier | None = None,
    ):
        self.db = db
        self.fetcher = fetcher
        self.parser = parser or FeedParser()
        self.events = events or ChangeNotifier()

    # ─────────────────────────────────────────────────────────────
    # Subscription
    # ─────────────────────────────────────────────────────────────

    async def validate_feed(self, url: str) -> ValidatedFeed:
        """
        Fetch and parse a feed URL once.

        Raises:
            FeedError: if the URL is invalid, the fetch fails, or the payload
                isn't a readable feed.
        """
        url = validate_feed_url(url)
        result = await self.fetcher.fetch(url)
        if not isinstance(result, FetchSuccess):
            raise UnknownFeedError("unexpected 304 for an unconditional request")

        # Placeholder source id; articles are rebuilt for the real source on subscribe
        articles = self.parser.parse(result.data, "")
        title = self.parser.extract_title(result.data) or urlparse(url).netloc
        return ValidatedFeed(
            url=url,
            title=title,
            articles=articles,
            etag=result.etag,
            last_modified=result.last_modified,
        )

    async def subscribe(
        self,
        url: str,
        title: str | None = None,
        site_url: str | None = None,
        tag: str | None = None,
        refresh_interval_minutes: int = 0,
    ) -> Source:
        """
        Subscribe to a feed and store its current articles.

        The feed's own title is used when none is given.

        Raises:
            DuplicateSourceError: if the URL is already subscribed.
            FeedError: if validation fails.
        """
        url = validate_feed_url(url)
        existing_urls = {source.feed_url.lower() for source in self.db.fetch_all_sources()}
        if url.lower() in existing_urls:
            raise DuplicateSourceError(url)

        feed = await self.validate_feed(url)

        source = self.db.add_source(Source(
            title=(title or "").strip() or feed.title,
            feed_url=feed.url,
            site_url=site_url,
            tag=tag or None,
            refresh_interval_minutes=max(refresh_interval_minutes, 0),
        ))

        articles = [
            Article(
                source_id=source.id,
                link=article.link,
                title=article.title,
                guid_or_id=article.guid_or_id,
                published_at=article.published_at,
                summary=article.summary,
            )
            for article in feed.articles
        ]
        saved = self.db.save_items(articles, source.id)
        source.mark_success(feed.etag, feed.last_modified)
        self.db.update_source_state(source)

        logger.info(f"Subscribed to '{source.title}' ({saved.new_count} articles)")
        self.events.emit("sources")
        return source

    def unsubscribe(self, source_id: str) -> bool:
        """Remove a source and its articles. Returns False if it didn't exist."""
        if self.db.fetch_source(source_id) is None:
            return False
        self.db.delete_source(source_id)
        self.events.emit("sources")
        return True

    # ─────────────────────────────────────────────────────────────
    # Editing
    # ─────────────────────────────────────────────────────────────

    def update(
        self,
        source_id: str,
        title: str | None = None,
        site_url: str | None = None,
        tag: str | None = None,
        is_enabled: bool | None = None,
        refresh_interval_minutes: int | None = None,
    ) -> Source | None:
        """
        Update user-editable fields. None keeps the current value; an empty
        string clears ``site_url`` or ``tag``.
        """
        source = self.db.fetch_source(source_id)
        if source is None:
            return None

        if title is not None and title.strip():
            source.title = title.strip()
        if site_url is not None:
            source.site_url = site_url or None
        if tag is not None:
            source.tag = tag.strip() or None
        if is_enabled is not None:
            source.is_enabled = is_enabled
        if refresh_interval_minutes is not None:
            source.refresh_interval_minutes = max(refresh_interval_minutes, 0)

        self.db.update_source(source)
        self.events.emit("sources")
        return source

    def reorder(self, source_ids: list[str]) -> list[Source]:
        """
        Apply a new display order.

        Unknown ids are ignored; sources missing from the list keep their
        relative order after the listed ones.
        """
        by_id = {source.id: source for source in self.db.fetch_all_sources()}
        ordered = [by_id.pop(source_id) for source_id in dict.fromkeys(source_ids) if source_id in by_id]
        ordered.extend(by_id.values())

        self.db.update_sources_order(ordered)
        self.events.emit("sources")
        return ordered
