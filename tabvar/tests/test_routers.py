import types
import unittest
from unittest.mock import AsyncMock, patch

import aiosqlite
from fastapi import HTTPException

from tabvar.db.entities import CRAG, ROUTE
from tabvar.db.repositories.external_refs import SqliteExternalRefRepository
from tabvar.db.sqlite_migrations import run_migrations
from tabvar.models import ExternalRefUpdate
from tabvar.routers import crags as crags_router
from tabvar.routers import external_refs as external_refs_router
from tabvar.routers import search as search_router
from tabvar.routers import sync as sync_router
from tabvar.tests.test_search import seed_hierarchy


class _FakeSyncEngine:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    async def sync_crags_and_sectors(self, book_index):
        self.calls.append(("crags", book_index))
        return {"log": ["found 1 crags in guidebook 11"], "sectorList": [{"external_id": "10", "local_id": 4, "name": "Wind Tower"}]}

    async def sync_routes(self, sector_id, external_sector_id):
        self.calls.append(("routes", sector_id, external_sector_id))
        return {"log": ["Error syncing routes for sloper sector id 10: boom"], "syncCount": 0}

    async def sync_issues(self):
        self.calls.append(("issues",))
        return {"log": ["found 0 issues"]}

    async def sync_all(self):
        self.calls.append(("all",))
        return {"log": ["a", "b"], "syncCount": 7}


def _request(engine=None):
    state = types.SimpleNamespace()
    if engine is not None:
        state.sloper_sync = engine
    return types.SimpleNamespace(app=types.SimpleNamespace(state=state))


class SyncRouterTests(unittest.IsolatedAsyncioTestCase):
    async def test_crag_sync_returns_sector_list(self) -> None:
        engine = _FakeSyncEngine()
        result = await sync_router.sync_crags_and_sectors(_request(engine), sync_router.CragSyncRequest(bookIndex=1))

        self.assertEqual(engine.calls, [("crags", 1)])
        self.assertEqual(result.sectorList[0].name, "Wind Tower")
        self.assertIsNone(result.syncCount)

    async def test_route_sync_failure_is_still_a_result(self) -> None:
        engine = _FakeSyncEngine()
        result = await sync_router.sync_routes(
            _request(engine), sync_router.RouteSyncRequest(sectorId=4, externalSectorId="10"),
        )

        self.assertEqual(engine.calls, [("routes", 4, "10")])
        self.assertEqual(result.syncCount, 0)
        self.assertEqual(len(result.log), 1)

    async def test_issue_and_full_sync(self) -> None:
        engine = _FakeSyncEngine()
        issues = await sync_router.sync_issues(_request(engine))
        full = await sync_router.sync_all(_request(engine))

        self.assertEqual(issues.log, ["found 0 issues"])
        self.assertIsNone(issues.sectorList)
        self.assertEqual(full.syncCount, 7)

    async def test_missing_engine_is_503(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await sync_router.sync_issues(_request())
        self.assertEqual(ctx.exception.status_code, 503)


class DbRouterTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.refs = SqliteExternalRefRepository(self.db)
        patcher = patch("tabvar.db.connection.get_connection", new=AsyncMock(return_value=self.db))
        patcher.start()
        self.addCleanup(patcher.stop)

    async def asyncTearDown(self) -> None:
        await self.db.close()


class ExternalRefsRouterTests(DbRouterTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        await self.refs.insert(CRAG, {"external_id": "1", "source": "sloper", "local_id": 7, "sync_data": 1})
        await self.refs.insert(
            ROUTE,
            {"external_id": "100", "source": "sloper", "local_id": 3, "sync_data": 1, "external_sector_id": "10"},
        )

    async def test_list_refs(self) -> None:
        refs = await external_refs_router.list_external_refs("route", source="sloper")

        self.assertEqual(len(refs), 1)
        self.assertEqual(refs[0].externalId, "100")
        self.assertEqual(refs[0].parentExternalId, "10")
        self.assertTrue(refs[0].syncData)
        self.assertIsNone(refs[0].syncChildren)

    async def test_patch_updates_only_given_fields(self) -> None:
        ref = await external_refs_router.update_external_ref(
            "crag", "sloper", "1", ExternalRefUpdate(syncChildren=False, forcedName="Eldorado Canyon"),
        )

        self.assertFalse(ref.syncChildren)
        self.assertTrue(ref.syncData)
        self.assertEqual(ref.forcedName, "Eldorado Canyon")
        self.assertEqual(ref.localId, 7)
        stored = await self.refs.get(CRAG, "sloper", "1")
        self.assertEqual(stored["sync_children"], 0)

    async def test_patch_can_clear_local_id(self) -> None:
        ref = await external_refs_router.update_external_ref("route", "sloper", "100", ExternalRefUpdate(localId=None))
        self.assertIsNone(ref.localId)

    async def test_unknown_kind_is_400(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await external_refs_router.list_external_refs("area", source=None)
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_field_missing_on_kind_is_400(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await external_refs_router.update_external_ref("route", "sloper", "100", ExternalRefUpdate(syncChildren=True))
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_missing_ref_is_404(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await external_refs_router.update_external_ref("crag", "sloper", "999", ExternalRefUpdate(syncData=False))
        self.assertEqual(ctx.exception.status_code, 404)


class CragsRouterTests(DbRouterTestCase):
    async def test_list_and_get(self) -> None:
        await self.db.execute("INSERT INTO crag (id, name) VALUES (1, 'Eldorado')")
        await self.db.execute("INSERT INTO sector (crag_id, name) VALUES (1, 'Wind Tower')")
        await self.db.commit()

        crags = await crags_router.get_crags()
        crag = await crags_router.get_crag(1)

        self.assertEqual([c.name for c in crags], ["Eldorado"])
        self.assertEqual([s.name for s in crag.sectors], ["Wind Tower"])

    async def test_missing_crag_is_404(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await crags_router.get_crag(12)
        self.assertEqual(ctx.exception.status_code, 404)


class SearchRouterTests(DbRouterTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        await seed_hierarchy(self.db)

    async def test_default_mode_searches_routes(self) -> None:
        results = await search_router.search_names(query="Bastille!", search_mode="global", limit=10)
        self.assertEqual([r.routeName for r in results], ["The Bastille Crack", "Werk Supp"])

    async def test_non_positive_limit_uses_default(self) -> None:
        results = await search_router.search_names(query="canyon", search_mode="global", limit=0)
        self.assertEqual(len(results), 5)

    async def test_missing_query_is_400(self) -> None:
        for query in (None, "", "?!"):
            with self.assertRaises(HTTPException) as ctx:
                await search_router.search_names(query=query, search_mode="global", limit=10)
            self.assertEqual(ctx.exception.status_code, 400)
            self.assertEqual(ctx.exception.detail, "parameter <query> is required")

    async def test_unknown_mode_is_400(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await search_router.search_names(query="wind", search_mode="sectorsOnly", limit=10)
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("searchMode", ctx.exception.detail)


if __name__ == "__main__":
    unittest.main()
