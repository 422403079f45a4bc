"""PostgreSQL implementation of the crag → sector → route → issue store."""
from __future__ import annotations

import asyncpg

from tabvar.db.entities import EntityKind, check_columns
from tabvar.db.errors import postgres_constraints

_EMPTY_SECTORS = "SELECT s.id FROM sector s LEFT JOIN route r ON r.sector_id = s.id WHERE r.id IS NULL"
_EMPTY_CRAGS = "SELECT c.id FROM crag c LEFT JOIN sector s ON s.crag_id = c.id WHERE s.id IS NULL"
_ROUTE_SEARCH = """SELECT r.id AS route_id, r.sector_id, s.crag_id, r.name AS route_name,
       r.alt_names, s.name AS sector_name, c.name AS crag_name,
       r.grade_yds, r.bolt_count, r.pitch_count
FROM route r
LEFT JOIN sector s ON s.id = r.sector_id
LEFT JOIN crag c ON c.id = s.crag_id"""


def _prefix_needles(query: str) -> list[str]:
    term = query.strip()
    return [f"{term}%", f"% {term}%"]


def _prefix_clause(columns: list[str]) -> str:
    return " OR ".join(f"{c} ILIKE $1 OR {c} ILIKE $2" for c in columns)


def _affected(status: str) -> int:
    # asyncpg returns command tags such as "UPDATE 1" / "DELETE 3"
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class PostgresHierarchyRepository:
    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def get(self, kind: EntityKind, entity_id: int) -> dict | None:
        row = await self.db.fetchrow(f"SELECT * FROM {kind.table} WHERE id = $1", entity_id)
        return dict(row) if row else None

    async def find_by_name(self, kind: EntityKind, name: str, parent_id: int | None = None) -> dict | None:
        if kind.parent_column:
            row = await self.db.fetchrow(
                f"SELECT * FROM {kind.table} WHERE name = $1 AND {kind.parent_column} IS NOT DISTINCT FROM $2",
                name, parent_id,
            )
        else:
            row = await self.db.fetchrow(f"SELECT * FROM {kind.table} WHERE name = $1", name)
        return dict(row) if row else None

    async def insert(self, kind: EntityKind, fields: dict) -> int:
        check_columns(kind, fields)
        columns = list(fields)
        values = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        async with postgres_constraints():
            new_id = await self.db.fetchval(
                f"INSERT INTO {kind.table} ({', '.join(columns)}) VALUES ({values}) RETURNING id",
                *(fields[c] for c in columns),
            )
        return new_id or 0

    async def update(self, kind: EntityKind, entity_id: int, fields: dict) -> int:
        check_columns(kind, fields)
        if not fields:
            return 0
        assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(fields, start=1))
        async with postgres_constraints():
            status = await self.db.execute(
                f"UPDATE {kind.table} SET {assignments} WHERE id = ${len(fields) + 1}",
                *fields.values(), entity_id,
            )
        return _affected(status)

    async def rename(self, kind: EntityKind, entity_id: int, name: str) -> int:
        return await self.update(kind, entity_id, {"name": name})

    async def delete(self, kind: EntityKind, entity_id: int) -> int:
        return _affected(await self.db.execute(f"DELETE FROM {kind.table} WHERE id = $1", entity_id))

    async def list_crags(self) -> list[dict]:
        rows = await self.db.fetch("SELECT * FROM crag ORDER BY name")
        return [dict(r) for r in rows]

    async def list_sectors_for_crag(self, crag_id: int) -> list[dict]:
        rows = await self.db.fetch(
            "SELECT * FROM sector WHERE crag_id = $1 ORDER BY sort_order NULLS LAST, name",
            crag_id,
        )
        return [dict(r) for r in rows]

    async def list_routes_for_sectors(self, sector_ids: list[int]) -> list[dict]:
        if not sector_ids:
            return []
        rows = await self.db.fetch(
            """SELECT * FROM route WHERE sector_id = ANY($1::int[])
               ORDER BY array_position($1::int[], sector_id), sort_order NULLS LAST, name""",
            sector_ids,
        )
        return [dict(r) for r in rows]

    async def list_issues_for_routes(self, route_ids: list[int]) -> list[dict]:
        if not route_ids:
            return []
        rows = await self.db.fetch(
            """SELECT * FROM issue WHERE route_id = ANY($1::int[])
               ORDER BY array_position($1::int[], route_id), id""",
            route_ids,
        )
        return [dict(r) for r in rows]

    async def list_attachments_for_issues(self, issue_ids: list[int]) -> list[dict]:
        if not issue_ids:
            return []
        rows = await self.db.fetch(
            """SELECT * FROM issue_attachment WHERE issue_id = ANY($1::int[])
               ORDER BY array_position($1::int[], issue_id), id""",
            issue_ids,
        )
        return [dict(r) for r in rows]

    async def search_routes(self, query: str, limit: int, match_parents: bool = False) -> list[dict]:
        columns = ["r.name", "r.alt_names", "s.name", "c.name"] if match_parents else ["r.name"]
        rows = await self.db.fetch(
            f"{_ROUTE_SEARCH} WHERE {_prefix_clause(columns)} ORDER BY r.name, r.id LIMIT $3",
            *_prefix_needles(query), limit,
        )
        return [dict(r) for r in rows]

    async def search_sectors(self, query: str, limit: int) -> list[dict]:
        rows = await self.db.fetch(
            f"""SELECT s.id AS sector_id, s.crag_id, s.name AS sector_name, c.name AS crag_name
                FROM sector s LEFT JOIN crag c ON c.id = s.crag_id
                WHERE {_prefix_clause(["s.name"])} ORDER BY s.name, s.id LIMIT $3""",
            *_prefix_needles(query), limit,
        )
        return [dict(r) for r in rows]

    async def search_crags(self, query: str, limit: int) -> list[dict]:
        rows = await self.db.fetch(
            f"""SELECT id AS crag_id, name AS crag_name FROM crag
                WHERE {_prefix_clause(["name"])} ORDER BY name, id LIMIT $3""",
            *_prefix_needles(query), limit,
        )
        return [dict(r) for r in rows]

    async def delete_empty_sector_refs(self, source: str) -> int:
        status = await self.db.execute(
            f"DELETE FROM external_sector_ref WHERE source = $1 AND local_id IN ({_EMPTY_SECTORS})",
            source,
        )
        return _affected(status)

    async def delete_empty_sectors(self) -> int:
        return _affected(await self.db.execute(f"DELETE FROM sector WHERE id IN ({_EMPTY_SECTORS})"))

    async def delete_empty_crag_refs(self, source: str) -> int:
        status = await self.db.execute(
            f"DELETE FROM external_crag_ref WHERE source = $1 AND local_id IN ({_EMPTY_CRAGS})",
            source,
        )
        return _affected(status)

    async def delete_empty_crags(self) -> int:
        return _affected(await self.db.execute(f"DELETE FROM crag WHERE id IN ({_EMPTY_CRAGS})"))
