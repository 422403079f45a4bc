"""PostgreSQL implementation of the external reference store."""
from __future__ import annotations

import asyncpg

from tabvar.db.entities import EntityKind, check_columns
from tabvar.db.errors import postgres_constraints
from tabvar.db.repositories.postgres.hierarchy import _affected


class PostgresExternalRefRepository:
    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def get(self, kind: EntityKind, source: str, external_id: str) -> dict | None:
        row = await self.db.fetchrow(
            f"SELECT * FROM {kind.ref_table} WHERE source = $1 AND external_id = $2",
            source, external_id,
        )
        return dict(row) if row else None

    async def insert(self, kind: EntityKind, ref: dict) -> None:
        check_columns(kind, ref, kind.ref_columns)
        columns = list(ref)
        values = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        async with postgres_constraints():
            await self.db.execute(
                f"INSERT INTO {kind.ref_table} ({', '.join(columns)}) VALUES ({values})",
                *(ref[c] for c in columns),
            )

    async def delete(self, kind: EntityKind, source: str, external_id: str) -> int:
        status = await self.db.execute(
            f"DELETE FROM {kind.ref_table} WHERE source = $1 AND external_id = $2",
            source, external_id,
        )
        return _affected(status)

    async def find_alias(
        self,
        kind: EntityKind,
        source: str,
        local_id: int,
        parent_external_id: str | None,
        exclude_external_id: str,
    ) -> dict | None:
        if kind.parent_ref_column is None:
            return None
        row = await self.db.fetchrow(
            f"""SELECT * FROM {kind.ref_table}
                WHERE source = $1 AND local_id = $2 AND external_id != $3
                  AND {kind.parent_ref_column} = $4
                LIMIT 1""",
            source, local_id, exclude_external_id, parent_external_id,
        )
        return dict(row) if row else None

    async def set_forced_name(self, kind: EntityKind, source: str, local_id: int, name: str) -> int:
        status = await self.db.execute(
            f"UPDATE {kind.ref_table} SET forced_name = $1 WHERE source = $2 AND local_id = $3",
            name, source, local_id,
        )
        return _affected(status)

    async def list_child_syncable(self, kind: EntityKind, source: str) -> list[dict]:
        rows = await self.db.fetch(
            f"""SELECT ref.external_id, ref.local_id, t.name
                FROM {kind.ref_table} ref
                JOIN {kind.table} t ON t.id = ref.local_id
                WHERE ref.source = $1 AND ref.sync_children = 1
                ORDER BY t.id""",
            source,
        )
        return [dict(r) for r in rows]

    async def list_all(self, kind: EntityKind, source: str | None = None) -> list[dict]:
        if source:
            rows = await self.db.fetch(
                f"SELECT * FROM {kind.ref_table} WHERE source = $1 ORDER BY external_id",
                source,
            )
        else:
            rows = await self.db.fetch(f"SELECT * FROM {kind.ref_table} ORDER BY source, external_id")
        return [dict(r) for r in rows]

    async def update(self, kind: EntityKind, source: str, external_id: str, fields: dict) -> dict | None:
        check_columns(kind, fields, kind.editable_ref_columns)
        if fields:
            assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(fields, start=1))
            n = len(fields)
            await self.db.execute(
                f"UPDATE {kind.ref_table} SET {assignments} WHERE source = ${n + 1} AND external_id = ${n + 2}",
                *fields.values(), source, external_id,
            )
        return await self.get(kind, source, external_id)
