"""
Article routes: listing, unread counts and read state.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..config import AppServices, SortOrder, get_services
from ..exceptions import require_article, require_source
from ..schemas import ArticleResponse, MarkReadResponse, UnreadCountResponse

router = APIRouter(prefix="/articles", tags=["articles"])

ServicesDep = Annotated[AppServices, Depends(get_services)]


@router.get("")
async def list_articles(
    services: ServicesDep,
    source_id: str | None = None,
    unread_only: bool = False,
    limit: int | None = Query(default=None, ge=1, le=500),
) -> list[ArticleResponse]:
    """
    Get articles newest first, optionally for one source.

    Unread articles come first when the sort order setting asks for it.
    Without a limit, the display count setting applies to single-source
    listings.
    """
    if source_id is not None:
        require_source(services.db.fetch_source(source_id))
        if limit is None:
            limit = services.settings.display_count

    articles = services.db.fetch_items(
        source_id=source_id,
        limit=limit,
        unread_only=unread_only,
        unread_first=services.settings.sort_order == SortOrder.UNREAD_FIRST,
    )
    return [ArticleResponse.from_db(a) for a in articles]


@router.get("/unread-count")
async def unread_count(
    services: ServicesDep,
    source_id: str | None = None,
    tag: str | None = None,
) -> UnreadCountResponse:
    """Unread count for everything, one source, or one tag."""
    if tag is not None:
        # An empty tag selects the uncategorized sources
        return UnreadCountResponse(unread_count=services.db.fetch_unread_count_for_tag(tag or None))
    return UnreadCountResponse(unread_count=services.db.fetch_unread_count(source_id))


@router.post("/read-all")
async def mark_all_read(
    services: ServicesDep,
    source_id: str | None = None,
) -> MarkReadResponse:
    """Mark every article (or every article of one source) as read."""
    if source_id is not None:
        require_source(services.db.fetch_source(source_id))
    count = services.manager.mark_all_as_read(source_id)
    return MarkReadResponse(success=True, count=count)


@router.post("/read-tag")
async def mark_tag_read(
    services: ServicesDep,
    tag: str | None = None,
) -> MarkReadResponse:
    """Mark the articles of every source with a tag as read; no tag means uncategorized."""
    count = services.manager.mark_all_as_read_for_tag(tag or None)
    return MarkReadResponse(success=True, count=count)


@router.get("/{article_id}")
async def get_article(article_id: str, services: ServicesDep) -> ArticleResponse:
    return ArticleResponse.from_db(require_article(services.db.fetch_article(article_id)))


@router.post("/{article_id}/read")
async def mark_read(article_id: str, services: ServicesDep) -> MarkReadResponse:
    """Mark one article as read."""
    require_article(services.db.fetch_article(article_id))
    services.manager.mark_as_read(article_id)
    return MarkReadResponse(success=True, count=1)
