"""Repository factory to abstract DB backend (SQLite vs Postgres)."""
from __future__ import annotations

from typing import Any

import aiosqlite

from tabvar.db.repositories.external_refs import SqliteExternalRefRepository
from tabvar.db.repositories.hierarchy import SqliteHierarchyRepository


def get_hierarchy_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteHierarchyRepository(db)
    from tabvar.db.repositories.postgres.hierarchy import PostgresHierarchyRepository
    return PostgresHierarchyRepository(db)


def get_external_ref_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteExternalRefRepository(db)
    from tabvar.db.repositories.postgres.external_refs import PostgresExternalRefRepository
    return PostgresExternalRefRepository(db)
