"""SQLite implementation of the crag → sector → route → issue store."""
from __future__ import annotations

import aiosqlite

from tabvar.db.entities import EntityKind, check_columns
from tabvar.db.errors import sqlite_constraints

_EMPTY_SECTORS = "SELECT s.id FROM sector s LEFT JOIN route r ON r.sector_id = s.id WHERE r.id IS NULL"
_EMPTY_CRAGS = "SELECT c.id FROM crag c LEFT JOIN sector s ON s.crag_id = c.id WHERE s.id IS NULL"


_ROUTE_SEARCH = """SELECT r.id AS route_id, r.sector_id, s.crag_id, r.name AS route_name,
       r.alt_names, s.name AS sector_name, c.name AS crag_name,
       r.grade_yds, r.bolt_count, r.pitch_count
FROM route r
LEFT JOIN sector s ON s.id = r.sector_id
LEFT JOIN crag c ON c.id = s.crag_id"""


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def _prefix_needles(query: str) -> list[str]:
    # start of the value, or start of any later word
    term = query.strip().lower()
    return [f"{term}%", f"% {term}%"]


def _prefix_clause(columns: list[str]) -> str:
    return " OR ".join(f"lower({c}) LIKE ? OR lower({c}) LIKE ?" for c in columns)


class SqliteHierarchyRepository:
    """Rows of the local crag hierarchy, keyed by integer id."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get(self, kind: EntityKind, entity_id: int) -> dict | None:
        async with self.db.execute(f"SELECT * FROM {kind.table} WHERE id = ?", (entity_id,)) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def find_by_name(self, kind: EntityKind, name: str, parent_id: int | None = None) -> dict | None:
        """Find the row holding ``name`` inside the parent scope of the kind."""
        if kind.parent_column:
            query = f"SELECT * FROM {kind.table} WHERE name = ? AND {kind.parent_column} IS ?"
            params: tuple = (name, parent_id)
        else:
            query = f"SELECT * FROM {kind.table} WHERE name = ?"
            params = (name,)
        async with self.db.execute(query, params) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def insert(self, kind: EntityKind, fields: dict) -> int:
        check_columns(kind, fields)
        columns = list(fields)
        async with sqlite_constraints():
            async with self.db.execute(
                f"INSERT INTO {kind.table} ({', '.join(columns)}) VALUES ({_placeholders(len(columns))})",
                tuple(fields[c] for c in columns),
            ) as cur:
                new_id = cur.lastrowid
        await self.db.commit()
        return new_id or 0

    async def update(self, kind: EntityKind, entity_id: int, fields: dict) -> int:
        check_columns(kind, fields)
        if not fields:
            return 0
        assignments = ", ".join(f"{c} = ?" for c in fields)
        async with sqlite_constraints():
            async with self.db.execute(
                f"UPDATE {kind.table} SET {assignments} WHERE id = ?",
                (*fields.values(), entity_id),
            ) as cur:
                changed = cur.rowcount
        await self.db.commit()
        return changed

    async def rename(self, kind: EntityKind, entity_id: int, name: str) -> int:
        return await self.update(kind, entity_id, {"name": name})

    async def delete(self, kind: EntityKind, entity_id: int) -> int:
        async with self.db.execute(f"DELETE FROM {kind.table} WHERE id = ?", (entity_id,)) as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted

    # ── Tree loading ────────────────────────────────────────────────

    async def list_crags(self) -> list[dict]:
        async with self.db.execute("SELECT * FROM crag ORDER BY name") as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_sectors_for_crag(self, crag_id: int) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM sector WHERE crag_id = ? ORDER BY sort_order IS NULL, sort_order, name",
            (crag_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_routes_for_sectors(self, sector_ids: list[int]) -> list[dict]:
        """Routes grouped by sector, sectors in the order given."""
        if not sector_ids:
            return []
        order = " ".join(f"WHEN {int(sid)} THEN {idx}" for idx, sid in enumerate(sector_ids))
        async with self.db.execute(
            f"""SELECT * FROM route WHERE sector_id IN ({_placeholders(len(sector_ids))})
                ORDER BY CASE sector_id {order} END, sort_order IS NULL, sort_order, name""",
            tuple(sector_ids),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_issues_for_routes(self, route_ids: list[int]) -> list[dict]:
        if not route_ids:
            return []
        order = " ".join(f"WHEN {int(rid)} THEN {idx}" for idx, rid in enumerate(route_ids))
        async with self.db.execute(
            f"""SELECT * FROM issue WHERE route_id IN ({_placeholders(len(route_ids))})
                ORDER BY CASE route_id {order} END, id""",
            tuple(route_ids),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_attachments_for_issues(self, issue_ids: list[int]) -> list[dict]:
        if not issue_ids:
            return []
        order = " ".join(f"WHEN {int(iid)} THEN {idx}" for idx, iid in enumerate(issue_ids))
        async with self.db.execute(
            f"""SELECT * FROM issue_attachment WHERE issue_id IN ({_placeholders(len(issue_ids))})
                ORDER BY CASE issue_id {order} END, id""",
            tuple(issue_ids),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    # ── Name search ─────────────────────────────────────────────────

    async def search_routes(self, query: str, limit: int, match_parents: bool = False) -> list[dict]:
        """Routes with a word starting with ``query`` in their name.

        With ``match_parents`` the alternate names and the sector and crag
        names are matched too.
        """
        columns = ["r.name", "r.alt_names", "s.name", "c.name"] if match_parents else ["r.name"]
        params = _prefix_needles(query) * len(columns)
        async with self.db.execute(
            f"{_ROUTE_SEARCH} WHERE {_prefix_clause(columns)} ORDER BY r.name, r.id LIMIT ?",
            (*params, limit),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def search_sectors(self, query: str, limit: int) -> list[dict]:
        async with self.db.execute(
            f"""SELECT s.id AS sector_id, s.crag_id, s.name AS sector_name, c.name AS crag_name
                FROM sector s LEFT JOIN crag c ON c.id = s.crag_id
                WHERE {_prefix_clause(["s.name"])} ORDER BY s.name, s.id LIMIT ?""",
            (*_prefix_needles(query), limit),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def search_crags(self, query: str, limit: int) -> list[dict]:
        async with self.db.execute(
            f"""SELECT id AS crag_id, name AS crag_name FROM crag
                WHERE {_prefix_clause(["name"])} ORDER BY name, id LIMIT ?""",
            (*_prefix_needles(query), limit),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    # ── Cleanup of empty containers ─────────────────────────────────

    async def delete_empty_sector_refs(self, source: str) -> int:
        async with self.db.execute(
            f"DELETE FROM external_sector_ref WHERE source = ? AND local_id IN ({_EMPTY_SECTORS})",
            (source,),
        ) as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted

    async def delete_empty_sectors(self) -> int:
        async with self.db.execute(f"DELETE FROM sector WHERE id IN ({_EMPTY_SECTORS})") as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted

    async def delete_empty_crag_refs(self, source: str) -> int:
        async with self.db.execute(
            f"DELETE FROM external_crag_ref WHERE source = ? AND local_id IN ({_EMPTY_CRAGS})",
            (source,),
        ) as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted

    async def delete_empty_crags(self) -> int:
        async with self.db.execute(f"DELETE FROM crag WHERE id IN ({_EMPTY_CRAGS})") as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted
