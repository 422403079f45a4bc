import unittest

import asyncpg

from tabvar.db.entities import CRAG, ROUTE, SECTOR
from tabvar.db.errors import ConstraintViolation, from_postgres_error, postgres_constraints
from tabvar.db.repositories.postgres.external_refs import PostgresExternalRefRepository
from tabvar.db.repositories.postgres.hierarchy import PostgresHierarchyRepository, _affected


def _pg_error(error_type, message, **fields):
    error = error_type(message)
    for name, value in fields.items():
        setattr(error, name, value)
    return error


class _FakePool:
    """Records statements and replays canned results like an asyncpg pool."""

    def __init__(self, results=None, error=None) -> None:
        self.calls: list[tuple] = []
        self.results = results or {}
        self.error = error

    async def _run(self, method, query, *args):
        self.calls.append((method, " ".join(query.split()), args))
        if self.error is not None:
            raise self.error
        return self.results.get(method)

    async def fetchrow(self, query, *args):
        return await self._run("fetchrow", query, *args)

    async def fetchval(self, query, *args):
        return await self._run("fetchval", query, *args)

    async def fetch(self, query, *args):
        return await self._run("fetch", query, *args) or []

    async def execute(self, query, *args):
        return await self._run("execute", query, *args)


class PostgresErrorTranslationTests(unittest.TestCase):
    def test_unique_violation_reads_key_detail(self) -> None:
        error = _pg_error(
            asyncpg.UniqueViolationError,
            'duplicate key value violates unique constraint "sector_crag_name_key"',
            detail="Key (crag_id, name)=(1, Bastille) already exists.",
            table_name="sector",
        )

        violation = from_postgres_error(error)

        self.assertEqual(violation.kind, "unique")
        self.assertEqual(violation.table, "sector")
        self.assertEqual(violation.columns, ("crag_id", "name"))
        self.assertTrue(violation.is_unique_name("sector"))
        self.assertFalse(violation.is_unique_name("route"))

    def test_single_column_key(self) -> None:
        error = _pg_error(
            asyncpg.UniqueViolationError,
            'duplicate key value violates unique constraint "crag_name_key"',
            detail="Key (name)=(Eldorado) already exists.",
            table_name="crag",
        )
        self.assertTrue(from_postgres_error(error).is_unique_name("crag"))

    def test_not_null_uses_column_name(self) -> None:
        error = _pg_error(
            asyncpg.NotNullViolationError,
            'null value in column "route_id" violates not-null constraint',
            column_name="route_id",
            table_name="issue",
        )

        violation = from_postgres_error(error)

        self.assertEqual(violation.kind, "not_null")
        self.assertEqual(violation.columns, ("route_id",))
        self.assertEqual(violation.table, "issue")

    def test_foreign_key(self) -> None:
        error = _pg_error(
            asyncpg.ForeignKeyViolationError,
            'insert or update on table "route" violates foreign key constraint',
            detail="Key (sector_id)=(99) is not present in table \"sector\".",
            table_name="route",
        )

        violation = from_postgres_error(error)

        self.assertEqual(violation.kind, "foreign_key")
        self.assertEqual(violation.columns, ("sector_id",))


class PostgresConstraintsContextTests(unittest.IsolatedAsyncioTestCase):
    async def test_translates_integrity_errors(self) -> None:
        with self.assertRaises(ConstraintViolation) as ctx:
            async with postgres_constraints():
                raise _pg_error(
                    asyncpg.UniqueViolationError,
                    "duplicate key",
                    detail="Key (sector_id, name)=(4, Project) already exists.",
                    table_name="route",
                )
        self.assertTrue(ctx.exception.is_unique_name("route"))
        self.assertIsInstance(ctx.exception.__cause__, asyncpg.UniqueViolationError)


class PostgresHierarchyRepositoryTests(unittest.IsolatedAsyncioTestCase):
    def test_command_tag_counts(self) -> None:
        self.assertEqual(_affected("UPDATE 1"), 1)
        self.assertEqual(_affected("DELETE 3"), 3)
        self.assertEqual(_affected(None), 0)

    async def test_insert_returns_new_id(self) -> None:
        pool = _FakePool(results={"fetchval": 12})
        repo = PostgresHierarchyRepository(pool)

        new_id = await repo.insert(SECTOR, {"name": "Wind Tower", "crag_id": 3})

        self.assertEqual(new_id, 12)
        method, query, args = pool.calls[0]
        self.assertEqual(query, "INSERT INTO sector (name, crag_id) VALUES ($1, $2) RETURNING id")
        self.assertEqual(args, ("Wind Tower", 3))

    async def test_insert_collision_raises_typed_violation(self) -> None:
        pool = _FakePool(error=_pg_error(
            asyncpg.UniqueViolationError,
            "duplicate key",
            detail="Key (sector_id, name)=(4, Project) already exists.",
            table_name="route",
        ))
        repo = PostgresHierarchyRepository(pool)

        with self.assertRaises(ConstraintViolation) as ctx:
            await repo.insert(ROUTE, {"name": "Project", "sector_id": 4})
        self.assertTrue(ctx.exception.is_unique_name("route"))

    async def test_find_by_name_matches_null_parent(self) -> None:
        pool = _FakePool(results={"fetchrow": {"id": 5, "name": "Orphan", "crag_id": None}})
        repo = PostgresHierarchyRepository(pool)

        row = await repo.find_by_name(SECTOR, "Orphan", None)

        self.assertEqual(row["id"], 5)
        _, query, args = pool.calls[0]
        self.assertIn("crag_id IS NOT DISTINCT FROM $2", query)
        self.assertEqual(args, ("Orphan", None))

    async def test_update_and_delete_report_affected_rows(self) -> None:
        pool = _FakePool(results={"execute": "UPDATE 1"})
        repo = PostgresHierarchyRepository(pool)

        self.assertEqual(await repo.update(CRAG, 7, {"name": "Eldorado", "latitude": 39.9}), 1)
        self.assertEqual(await repo.update(CRAG, 7, {}), 0)
        _, query, args = pool.calls[0]
        self.assertEqual(query, "UPDATE crag SET name = $1, latitude = $2 WHERE id = $3")
        self.assertEqual(args, ("Eldorado", 39.9, 7))
        self.assertEqual(len(pool.calls), 1)

        pool.results["execute"] = "DELETE 1"
        self.assertEqual(await repo.delete(ROUTE, 9), 1)
        self.assertEqual(pool.calls[-1][1:], ("DELETE FROM route WHERE id = $1", (9,)))

    async def test_tree_queries_skip_empty_id_lists(self) -> None:
        pool = _FakePool()
        repo = PostgresHierarchyRepository(pool)

        self.assertEqual(await repo.list_routes_for_sectors([]), [])
        self.assertEqual(pool.calls, [])

        await repo.list_routes_for_sectors([4, 2])
        _, query, args = pool.calls[0]
        self.assertIn("array_position($1::int[], sector_id)", query)
        self.assertEqual(args, ([4, 2],))

    async def test_search_matches_word_prefixes_case_insensitively(self) -> None:
        pool = _FakePool(results={"fetch": [{"route_id": 3, "route_name": "Wind Ridge"}]})
        repo = PostgresHierarchyRepository(pool)

        rows = await repo.search_routes("wind", 5, match_parents=True)

        self.assertEqual(rows, [{"route_id": 3, "route_name": "Wind Ridge"}])
        _, query, args = pool.calls[0]
        self.assertIn("r.name ILIKE $1 OR r.name ILIKE $2", query)
        self.assertIn("c.name ILIKE $1 OR c.name ILIKE $2", query)
        self.assertTrue(query.endswith("ORDER BY r.name, r.id LIMIT $3"))
        self.assertEqual(args, ("wind%", "% wind%", 5))

        await repo.search_crags("eldo", 2)
        self.assertEqual(pool.calls[1][2], ("eldo%", "% eldo%", 2))


class PostgresExternalRefRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def test_update_numbers_placeholders_after_fields(self) -> None:
        ref = {"external_id": "1", "source": "sloper", "local_id": 7, "sync_data": 0}
        pool = _FakePool(results={"execute": "UPDATE 1", "fetchrow": ref})
        repo = PostgresExternalRefRepository(pool)

        row = await repo.update(CRAG, "sloper", "1", {"sync_data": 0, "forced_name": "Eldo"})

        self.assertEqual(row, ref)
        _, query, args = pool.calls[0]
        self.assertEqual(
            query,
            "UPDATE external_crag_ref SET sync_data = $1, forced_name = $2 WHERE source = $3 AND external_id = $4",
        )
        self.assertEqual(args, (0, "Eldo", "sloper", "1"))

    async def test_update_rejects_non_editable_columns(self) -> None:
        repo = PostgresExternalRefRepository(_FakePool())
        with self.assertRaises(ValueError):
            await repo.update(ROUTE, "sloper", "100", {"sync_children": 0})

    async def test_find_alias_requires_parent_column(self) -> None:
        pool = _FakePool(results={"fetchrow": {"external_id": "100"}})
        repo = PostgresExternalRefRepository(pool)

        self.assertIsNone(await repo.find_alias(CRAG, "sloper", 3, None, "1"))
        self.assertEqual(pool.calls, [])

        alias = await repo.find_alias(ROUTE, "sloper", 3, "10", "101")
        self.assertEqual(alias["external_id"], "100")
        _, query, args = pool.calls[0]
        self.assertIn("external_sector_id = $4", query)
        self.assertEqual(args, ("sloper", 3, "101", "10"))

    async def test_delete_counts_rows(self) -> None:
        pool = _FakePool(results={"execute": "DELETE 1"})
        repo = PostgresExternalRefRepository(pool)

        self.assertEqual(await repo.delete(ROUTE, "sloper", "102"), 1)
        self.assertEqual(pool.calls[0][2], ("sloper", "102"))


if __name__ == "__main__":
    unittest.main()
