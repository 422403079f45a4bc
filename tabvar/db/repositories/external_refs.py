"""SQLite implementation of the external reference store."""
from __future__ import annotations

import aiosqlite

from tabvar.db.entities import EntityKind, check_columns
from tabvar.db.errors import sqlite_constraints


class SqliteExternalRefRepository:
    """(source, external_id) → local_id mappings, one table per entity kind."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get(self, kind: EntityKind, source: str, external_id: str) -> dict | None:
        async with self.db.execute(
            f"SELECT * FROM {kind.ref_table} WHERE source = ? AND external_id = ?",
            (source, external_id),
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def insert(self, kind: EntityKind, ref: dict) -> None:
        check_columns(kind, ref, kind.ref_columns)
        columns = list(ref)
        async with sqlite_constraints():
            await self.db.execute(
                f"INSERT INTO {kind.ref_table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                tuple(ref[c] for c in columns),
            )
        await self.db.commit()

    async def delete(self, kind: EntityKind, source: str, external_id: str) -> int:
        async with self.db.execute(
            f"DELETE FROM {kind.ref_table} WHERE source = ? AND external_id = ?",
            (source, external_id),
        ) as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted

    async def find_alias(
        self,
        kind: EntityKind,
        source: str,
        local_id: int,
        parent_external_id: str | None,
        exclude_external_id: str,
    ) -> dict | None:
        """Another reference of ``source`` already pointing at ``local_id``
        from the same upstream parent."""
        if kind.parent_ref_column is None:
            return None
        async with self.db.execute(
            f"""SELECT * FROM {kind.ref_table}
                WHERE source = ? AND local_id = ? AND external_id != ?
                  AND {kind.parent_ref_column} = ?
                LIMIT 1""",
            (source, local_id, exclude_external_id, parent_external_id),
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def set_forced_name(self, kind: EntityKind, source: str, local_id: int, name: str) -> int:
        async with self.db.execute(
            f"UPDATE {kind.ref_table} SET forced_name = ? WHERE source = ? AND local_id = ?",
            (name, source, local_id),
        ) as cur:
            changed = cur.rowcount
        await self.db.commit()
        return changed

    async def list_child_syncable(self, kind: EntityKind, source: str) -> list[dict]:
        """References flagged ``sync_children`` joined with their local row name."""
        async with self.db.execute(
            f"""SELECT ref.external_id, ref.local_id, t.name
                FROM {kind.ref_table} ref
                JOIN {kind.table} t ON t.id = ref.local_id
                WHERE ref.source = ? AND ref.sync_children = 1
                ORDER BY t.id""",
            (source,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_all(self, kind: EntityKind, source: str | None = None) -> list[dict]:
        if source:
            async with self.db.execute(
                f"SELECT * FROM {kind.ref_table} WHERE source = ? ORDER BY external_id",
                (source,),
            ) as cur:
                return [dict(r) for r in await cur.fetchall()]
        async with self.db.execute(f"SELECT * FROM {kind.ref_table} ORDER BY source, external_id") as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def update(self, kind: EntityKind, source: str, external_id: str, fields: dict) -> dict | None:
        check_columns(kind, fields, kind.editable_ref_columns)
        if fields:
            assignments = ", ".join(f"{c} = ?" for c in fields)
            await self.db.execute(
                f"UPDATE {kind.ref_table} SET {assignments} WHERE source = ? AND external_id = ?",
                (*fields.values(), source, external_id),
            )
            await self.db.commit()
        return await self.get(kind, source, external_id)
