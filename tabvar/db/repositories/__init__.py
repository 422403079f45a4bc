"""Repository package for database access."""

from .hierarchy import SqliteHierarchyRepository
from .external_refs import SqliteExternalRefRepository

__all__ = [
    "SqliteHierarchyRepository",
    "SqliteExternalRefRepository",
]
