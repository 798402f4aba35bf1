"""
Feed manager - runs refresh passes and the mark-read verbs.

A refresh pass fetches, parses and merges each source independently; one
source failing never aborts the others. Source state is written back for
every source in the pass, then new articles are handed to the notifier as a
single batch and a change event is emitted.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .config import Settings
from .database import Article, Database, Source
from .database.models import utcnow
from .events import ChangeNotifier
from .exceptions import FeedError, describe_error
from .feeds import FeedParser
from .fetcher import FeedFetcher, FetchResult, FetchSuccess, NotModified
from .notification_service import Notifier

logger = logging.getLogger(__name__)


class RefreshStatus(str, Enum):
    UPDATED = "updated"
    NOT_MODIFIED = "not_modified"
    FAILED = "failed"


@dataclass
class SourceOutcome:
    """What happened to one source during a refresh."""
    source_id: str
    status: RefreshStatus
    new_count: int = 0
    error: str | None = None


@dataclass
class RefreshReport:
    """Result of a refresh pass."""
    outcomes: list[SourceOutcome] = field(default_factory=list)
    new_articles: list[Article] = field(default_factory=list)  # newest first
    source_names: list[str] = field(default_factory=list)

    @property
    def new_count(self) -> int:
        return len(self.new_articles)

    @property
    def failed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == RefreshStatus.FAILED)


class FeedManager:
    """
    Coordinates fetch, parse, merge and source-state updates.

    Only one global pass runs at a time, and a given source is never
    refreshed by two calls at once. Sources taken by a running pass are
    registered in the same in-flight set used by single-source refresh.
    """

    def __init__(
        self,
        db: Database,
        fetcher: FeedFetcher,
        parser: FeedParser | None = None,
        settings: Settings | None = None,
        events: ChangeNotifier | None = None,
        notifier: Notifier | None = None,
    ):
        self.db = db
        self.fetcher = fetcher
        self.parser = parser or FeedParser()
        self.settings = settings or Settings()
        self.events = events or ChangeNotifier()
        self.notifier = notifier
        self.last_refresh_at: datetime | None = None
        self._global_running = False
        self._refreshing: set[str] = set()

    @property
    def is_refreshing(self) -> bool:
        return self._global_running

    def is_source_refreshing(self, source_id: str) -> bool:
        return source_id in self._refreshing

    # ─────────────────────────────────────────────────────────────
    # Refresh
    # ─────────────────────────────────────────────────────────────

    async def refresh_all(self, only_due: bool = False) -> RefreshReport | None:
        """
        Refresh every enabled source.

        Returns None without doing anything if a pass is already running.
        With ``only_due``, sources whose backoff-adjusted interval has not
        elapsed yet are skipped.
        """
        if self._global_running:
            logger.debug("Refresh already in progress, skipping")
            return None

        self._global_running = True
        claimed: list[str] = []
        try:
            sources = self.db.fetch_enabled_sources()
            if only_due:
                sources = [source for source in sources if self._is_due(source)]
            sources = [source for source in sources if source.id not in self._refreshing]
            claimed = [source.id for source in sources]
            self._refreshing.update(claimed)

            results = await self.fetcher.fetch_multiple(sources)

            report = RefreshReport()
            for source, result in results:
                outcome, new_articles = self._apply_safely(source, result)
                report.outcomes.append(outcome)
                if new_articles:
                    report.new_articles.extend(new_articles)
                    if source.title not in report.source_names:
                        report.source_names.append(source.title)

            report.new_articles.sort(key=lambda article: article.display_date, reverse=True)
            self.last_refresh_at = utcnow()
            logger.info(
                f"Refreshed {len(report.outcomes)} sources: "
                f"{report.new_count} new articles, {report.failed_count} failed"
            )
        finally:
            self._refreshing.difference_update(claimed)
            self._global_running = False

        self._notify(report)
        self.events.emit("refresh")
        return report

    async def refresh(self, source_id: str) -> RefreshReport | None:
        """
        Refresh a single source.

        Returns None if the source doesn't exist or is already being
        refreshed. Does not notify; emits a change event.
        """
        if source_id in self._refreshing:
            logger.debug(f"Source {source_id} already refreshing, skipping")
            return None

        source = self.db.fetch_source(source_id)
        if source is None:
            return None

        self._refreshing.add(source_id)
        try:
            result = await self.fetcher.fetch_safe(source)
            outcome, new_articles = self._apply_safely(source, result)
        finally:
            self._refreshing.discard(source_id)

        new_articles.sort(key=lambda article: article.display_date, reverse=True)
        report = RefreshReport(
            outcomes=[outcome],
            new_articles=new_articles,
            source_names=[source.title] if new_articles else [],
        )
        logger.info(f"Refreshed '{source.title}': {outcome.status.value}, {outcome.new_count} new")
        self.events.emit("refresh")
        return report

    def _is_due(self, source: Source) -> bool:
        next_date = source.next_refresh_date(self.settings.global_refresh_interval)
        return next_date is None or next_date <= utcnow()

    def _apply_safely(
        self,
        source: Source,
        result: FetchResult | FeedError
    ) -> tuple[SourceOutcome, list[Article]]:
        try:
            return self._apply_result(source, result)
        except sqlite3.Error as e:
            logger.exception(f"Storage error while refreshing '{source.title}'")
            try:
                return self._record_failure(source, e), []
            except sqlite3.Error:
                logger.exception(f"Could not record failure state for '{source.title}'")
                return SourceOutcome(source.id, RefreshStatus.FAILED, error=describe_error(e)), []

    def _apply_result(
        self,
        source: Source,
        result: FetchResult | FeedError
    ) -> tuple[SourceOutcome, list[Article]]:
        """Parse and merge one fetch result, then persist the source's new state."""
        if isinstance(result, NotModified):
            source.mark_success(source.etag, source.last_modified)
            self.db.update_source_state(source)
            logger.debug(f"'{source.title}' not modified")
            return SourceOutcome(source.id, RefreshStatus.NOT_MODIFIED), []

        if isinstance(result, FetchSuccess):
            try:
                articles = self.parser.parse(result.data, source.id)
            except FeedError as e:
                return self._record_failure(source, e), []

            saved = self.db.save_items(articles, source.id)
            source.mark_success(result.etag, result.last_modified)
            self.db.update_source_state(source)
            return SourceOutcome(source.id, RefreshStatus.UPDATED, saved.new_count), saved.new_articles

        return self._record_failure(source, result), []

    def _record_failure(self, source: Source, error: Exception) -> SourceOutcome:
        description = describe_error(error)
        source.mark_failure(description)
        self.db.update_source_state(source)
        logger.warning(
            f"Refresh failed for '{source.title}' ({source.consecutive_failures} in a row): {description}"
        )
        return SourceOutcome(source.id, RefreshStatus.FAILED, error=description)

    def _notify(self, report: RefreshReport):
        if not report.new_articles or not self.settings.enable_notifications:
            return
        if self.notifier is None:
            return
        try:
            self.notifier.send_new_articles(report.new_articles, report.source_names)
        except Exception as e:
            logger.warning(f"Notification delivery failed: {e}")

    # ─────────────────────────────────────────────────────────────
    # Read state
    # ─────────────────────────────────────────────────────────────

    def mark_as_read(self, article_id: str) -> bool:
        changed = self.db.mark_as_read(article_id)
        self.events.emit("mark_read")
        return changed

    def mark_all_as_read(self, source_id: str | None = None) -> int:
        count = self.db.mark_all_as_read(source_id)
        self.events.emit("mark_read")
        return count

    def mark_all_as_read_for_tag(self, tag: str | None) -> int:
        count = self.db.mark_all_as_read_for_tag(tag)
        self.events.emit("mark_read")
        return count
