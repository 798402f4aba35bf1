"""
Source routes: subscription management, ordering and refresh.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from ..config import AppServices, get_services
from ..exceptions import DuplicateSourceError, FeedError, require_source
from ..schemas import (
    AddSourceRequest,
    RefreshResponse,
    ReorderSourcesRequest,
    SourceGroupResponse,
    SourceResponse,
    UpdateSourceRequest,
)

router = APIRouter(prefix="/sources", tags=["sources"])

ServicesDep = Annotated[AppServices, Depends(get_services)]


def _unread_counts(services: AppServices, source_ids: list[str]) -> dict[str, int]:
    counts = services.db.fetch_unread_counts_by_source()
    return {source_id: counts.get(source_id, 0) for source_id in source_ids}


# ─────────────────────────────────────────────────────────────
# Listing (static paths first)
# ─────────────────────────────────────────────────────────────

@router.get("")
async def list_sources(services: ServicesDep) -> list[SourceResponse]:
    """List all sources in display order."""
    sources = services.db.fetch_all_sources()
    counts = _unread_counts(services, [s.id for s in sources])
    return [SourceResponse.from_db(s, counts[s.id]) for s in sources]


@router.get("/grouped")
async def list_sources_grouped(services: ServicesDep) -> list[SourceGroupResponse]:
    """Sources grouped by tag, uncategorized last."""
    groups = services.db.fetch_sources_grouped_by_tag()
    counts = _unread_counts(services, [s.id for g in groups for s in g.sources])
    return [SourceGroupResponse.from_db(g, counts) for g in groups]


@router.get("/tags")
async def list_tags(services: ServicesDep) -> list[str]:
    return services.db.fetch_all_tags()


@router.put("/order")
async def reorder_sources(
    request: ReorderSourcesRequest,
    services: ServicesDep
) -> list[SourceResponse]:
    """Set the display order of sources."""
    sources = services.sources.reorder(request.source_ids)
    counts = _unread_counts(services, [s.id for s in sources])
    return [SourceResponse.from_db(s, counts[s.id]) for s in sources]


@router.post("/refresh")
async def refresh_all_sources(services: ServicesDep) -> RefreshResponse:
    """Refresh every enabled source and wait for the pass to finish."""
    report = await services.manager.refresh_all()
    return RefreshResponse.from_report(report)


# ─────────────────────────────────────────────────────────────
# Subscription management
# ─────────────────────────────────────────────────────────────

@router.post("")
async def add_source(request: AddSourceRequest, services: ServicesDep) -> SourceResponse:
    """Subscribe to a new feed."""
    try:
        source = await services.sources.subscribe(
            request.url,
            title=request.title,
            site_url=request.site_url,
            tag=request.tag,
            refresh_interval_minutes=request.refresh_interval_minutes,
        )
    except DuplicateSourceError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FeedError as e:
        raise HTTPException(status_code=400, detail=f"Invalid feed: {e}")

    return SourceResponse.from_db(source, services.db.fetch_unread_count(source.id))


@router.put("/{source_id}")
async def update_source(
    source_id: str,
    request: UpdateSourceRequest,
    services: ServicesDep
) -> SourceResponse:
    """Update a source's user-editable fields."""
    source = require_source(services.sources.update(
        source_id,
        title=request.title,
        site_url=request.site_url,
        tag=request.tag,
        is_enabled=request.is_enabled,
        refresh_interval_minutes=request.refresh_interval_minutes,
    ))
    return SourceResponse.from_db(source, services.db.fetch_unread_count(source.id))


@router.delete("/{source_id}")
async def remove_source(source_id: str, services: ServicesDep) -> dict:
    """Unsubscribe from a source; its articles are deleted with it."""
    if not services.sources.unsubscribe(source_id):
        raise HTTPException(status_code=404, detail="Source not found")
    return {"success": True}


@router.post("/{source_id}/refresh")
async def refresh_source(source_id: str, services: ServicesDep) -> RefreshResponse:
    """Refresh a single source."""
    require_source(services.db.fetch_source(source_id))
    report = await services.manager.refresh(source_id)
    return RefreshResponse.from_report(report)
