"""
Pydantic models for API request/response validation.
"""

from pydantic import BaseModel

from .config import Settings
from .database import Article, Source, SourceGroup
from .manager import RefreshReport, SourceOutcome


# ─────────────────────────────────────────────────────────────
# Source Schemas
# ─────────────────────────────────────────────────────────────

class SourceResponse(BaseModel):
    """Source for list view."""
    id: str
    title: str
    feed_url: str
    site_url: str | None
    tag: str | None
    is_enabled: bool
    refresh_interval_minutes: int
    display_order: int
    last_fetched_at: str | None
    last_error: str | None = None
    consecutive_failures: int = 0
    unread_count: int = 0

    @classmethod
    def from_db(cls, source: Source, unread_count: int = 0) -> "SourceResponse":
        return cls(
            id=source.id,
            title=source.title,
            feed_url=source.feed_url,
            site_url=source.site_url,
            tag=source.tag,
            is_enabled=source.is_enabled,
            refresh_interval_minutes=source.refresh_interval_minutes,
            display_order=source.display_order,
            last_fetched_at=source.last_fetched_at.isoformat() if source.last_fetched_at else None,
            last_error=source.last_error,
            consecutive_failures=source.consecutive_failures,
            unread_count=unread_count,
        )


class SourceGroupResponse(BaseModel):
    """Sources sharing a tag; tag is null for uncategorized."""
    tag: str | None
    sources: list[SourceResponse]

    @classmethod
    def from_db(cls, group: SourceGroup, unread_counts: dict[str, int]) -> "SourceGroupResponse":
        return cls(
            tag=group.tag,
            sources=[SourceResponse.from_db(s, unread_counts.get(s.id, 0)) for s in group.sources],
        )


class AddSourceRequest(BaseModel):
    """Request to subscribe to a feed."""
    url: str
    title: str | None = None
    site_url: str | None = None
    tag: str | None = None
    refresh_interval_minutes: int = 0


class UpdateSourceRequest(BaseModel):
    """Request to update a source. Empty strings clear site_url and tag."""
    title: str | None = None
    site_url: str | None = None
    tag: str | None = None
    is_enabled: bool | None = None
    refresh_interval_minutes: int | None = None


class ReorderSourcesRequest(BaseModel):
    """New display order, as a list of source ids."""
    source_ids: list[str]


# ─────────────────────────────────────────────────────────────
# Article Schemas
# ─────────────────────────────────────────────────────────────

class ArticleResponse(BaseModel):
    """Article for list view."""
    id: str
    source_id: str
    link: str
    title: str
    summary: str | None
    is_read: bool
    published_at: str | None
    first_seen_at: str
    display_date: str

    @classmethod
    def from_db(cls, article: Article) -> "ArticleResponse":
        return cls(
            id=article.id,
            source_id=article.source_id,
            link=article.link,
            title=article.title,
            summary=article.summary,
            is_read=article.is_read,
            published_at=article.published_at.isoformat() if article.published_at else None,
            first_seen_at=article.first_seen_at.isoformat(),
            display_date=article.display_date.isoformat(),
        )


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkReadResponse(BaseModel):
    success: bool
    count: int = 0


# ─────────────────────────────────────────────────────────────
# Refresh Schemas
# ─────────────────────────────────────────────────────────────

class SourceOutcomeResponse(BaseModel):
    source_id: str
    status: str
    new_count: int
    error: str | None = None

    @classmethod
    def from_outcome(cls, outcome: SourceOutcome) -> "SourceOutcomeResponse":
        return cls(
            source_id=outcome.source_id,
            status=outcome.status.value,
            new_count=outcome.new_count,
            error=outcome.error,
        )


class RefreshResponse(BaseModel):
    """Result of a refresh request."""
    success: bool
    message: str
    new_count: int = 0
    outcomes: list[SourceOutcomeResponse] = []

    @classmethod
    def from_report(cls, report: RefreshReport | None) -> "RefreshResponse":
        if report is None:
            return cls(success=False, message="Refresh already in progress")
        return cls(
            success=True,
            message=f"Refreshed {len(report.outcomes)} sources",
            new_count=report.new_count,
            outcomes=[SourceOutcomeResponse.from_outcome(o) for o in report.outcomes],
        )


# ─────────────────────────────────────────────────────────────
# Settings Schemas
# ─────────────────────────────────────────────────────────────

class SettingsResponse(BaseModel):
    """Application settings."""
    global_refresh_interval: int = 15
    display_count: int = 7
    sort_order: str = "unread_first"
    mark_as_read_on_click: bool = True
    enable_notifications: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettingsResponse":
        return cls(
            global_refresh_interval=settings.global_refresh_interval,
            display_count=settings.display_count,
            sort_order=settings.sort_order.value,
            mark_as_read_on_click=settings.mark_as_read_on_click,
            enable_notifications=settings.enable_notifications,
        )
