"""
API route modules.
"""

from .articles import router as articles_router
from .sources import router as sources_router
from .misc import router as misc_router

__all__ = [
    "articles_router",
    "sources_router",
    "misc_router",
]
