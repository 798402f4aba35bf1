"""
Service layer for business logic.

Services encapsulate business logic, keeping routes as thin HTTP adapters.
Each service receives its dependencies via constructor injection.
"""

from .source_service import SourceService, ValidatedFeed

__all__ = [
    "SourceService",
    "ValidatedFeed",
]
