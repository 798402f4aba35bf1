"""
Miscellaneous routes: health check and settings.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from .. import __version__
from ..config import AppServices, get_services
from ..schemas import SettingsResponse

router = APIRouter(tags=["misc"])

ServicesDep = Annotated[AppServices, Depends(get_services)]


@router.get("/health")
async def health_check(services: ServicesDep) -> dict:
    """API health check."""
    last_refresh = services.manager.last_refresh_at
    return {
        "status": "ok",
        "version": __version__,
        "refresh_in_progress": services.manager.is_refreshing,
        "last_refresh_at": last_refresh.isoformat() if last_refresh else None,
        "scheduler_running": bool(services.scheduler and services.scheduler.is_running),
    }


@router.get("/settings")
async def get_settings(services: ServicesDep) -> SettingsResponse:
    """Get the refresh and presentation settings."""
    return SettingsResponse.from_settings(services.settings)
