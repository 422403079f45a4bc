"""Sloper → local database reconciliation.

Imports crags, sectors, routes and issues from Sloper into the local
hierarchy. Every upstream record is tracked through an external reference
row; names that collide with existing local rows are either aliased (same
real-world object reported under another upstream parent) or kept side by
side and renamed with numeric suffixes (two records of one upstream parent
sharing a name, e.g. two routes called "Project").

Records are processed strictly one at a time. Duplicate detection reads the
rows written by the immediately preceding records, so nothing inside one
entity type and parent scope may be parallelized.
"""
from __future__ import annotations

import logging
import re
import sys
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from tabvar import config
from tabvar.db.entities import CRAG, ISSUE, ROUTE, SECTOR, EntityKind
from tabvar.db.errors import ConstraintViolation
from tabvar.db.factory import get_external_ref_repository, get_hierarchy_repository
from tabvar.sloper.client import SloperClient
from tabvar.sloper.exceptions import FetchError, RenameDepthExceeded
from tabvar.sloper.mappers import (
    BOULDERING,
    crag_external_id,
    decode_text,
    map_crag,
    map_issue,
    map_route,
    map_sector,
    route_external_id,
    route_style,
)
from tabvar.sloper.sync_log import SyncLog

logger = logging.getLogger("tabvar.sloper")

_TRAILING_NUMBER_RE = re.compile(r"^(.*?)( \d+)?$", re.DOTALL)


def get_incremental_name(name: str) -> str:
    """Bump a trailing counter: "Project" → "Project 2", "Project 2" → "Project 3"."""
    match = _TRAILING_NUMBER_RE.match(name)
    if match and match.group(2):
        return f"{match.group(1)} {int(match.group(2)) + 1}"
    return f"{name} 2"


def _sort_key(sort_order: int | None) -> int:
    return sort_order if sort_order is not None else sys.maxsize


@dataclass
class SyncCounts:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0

    def summary(self, noun: str) -> str:
        return (
            f"Sloper: {self.updated} {noun} updated. {self.inserted} {noun} added. "
            f"Found {self.duplicates} duplicates. {self.unchanged} unchanged, "
            f"{self.skipped} skipped, {self.failed} failed."
        )


class SloperSyncEngine:
    """Entry points for the Sloper sync, one sync session per call."""

    def __init__(
        self,
        db: Any,
        client_factory: Callable[[], Any] = SloperClient,
        guidebooks: list[str] | None = None,
        rename_max_depth: int | None = None,
        tz_name: str | None = None,
    ):
        self.entities = get_hierarchy_repository(db)
        self.refs = get_external_ref_repository(db)
        self.client_factory = client_factory
        self.guidebooks = list(guidebooks if guidebooks is not None else config.SLOPER_GUIDEBOOKS)
        self.rename_max_depth = rename_max_depth if rename_max_depth is not None else config.RENAME_MAX_DEPTH
        self.tz_name = tz_name
        self.source = config.SLOPER_SOURCE

    # ── Entry points ────────────────────────────────────────────────

    async def sync_crags_and_sectors(self, book_index: int) -> dict[str, Any]:
        log = SyncLog()
        if not 0 <= book_index < len(self.guidebooks):
            log.error("Error: invalid book id")
            return {"log": log.lines, "sectorList": []}

        sectors: list[dict] = []
        try:
            async with self.client_factory() as client:
                await self._sync_guidebook(client, self.guidebooks[book_index], log)
            sectors = await self.refs.list_child_syncable(SECTOR, self.source)
        except Exception as e:
            log.error(f"Error syncing sloper data: {e}")
        return {"log": log.lines, "sectorList": sectors}

    async def sync_routes(self, sector_id: int, external_sector_id: str) -> dict[str, Any]:
        log = SyncLog()
        try:
            async with self.client_factory() as client:
                counts = await self._update_routes(client, sector_id, external_sector_id, log)
            return {"log": log.lines, "syncCount": counts.inserted + counts.updated}
        except Exception as e:
            log.error(f"Error syncing routes for sloper sector id {external_sector_id}: {e}")
        return {"log": log.lines, "syncCount": 0}

    async def sync_issues(self) -> dict[str, Any]:
        log = SyncLog()
        await self.cleanup_empties(log)
        try:
            async with self.client_factory() as client:
                await self._update_issues(client, log)
        except Exception as e:
            log.error(f"Error syncing issues: {e}")
        return {"log": log.lines}

    async def sync_all(self) -> dict[str, Any]:
        """Every guidebook in priority order, then each sector's routes, then issues."""
        log = SyncLog()
        total = 0
        try:
            async with self.client_factory() as client:
                for book_id in self.guidebooks:
                    await self._sync_guidebook(client, book_id, log)

                for sector in await self.refs.list_child_syncable(SECTOR, self.source):
                    try:
                        counts = await self._update_routes(client, sector["local_id"], sector["external_id"], log)
                    except FetchError as e:
                        log.error(f"Error syncing routes for sloper sector id {sector['external_id']}: {e}")
                        continue
                    total += counts.inserted + counts.updated

                await self.cleanup_empties(log)
                await self._update_issues(client, log)
        except Exception as e:
            log.error(f"Error syncing sloper data: {e}")
        return {"log": log.lines, "syncCount": total}

    # ── Per entity type ─────────────────────────────────────────────

    async def _sync_guidebook(self, client: Any, book_id: str, log: SyncLog) -> None:
        crag_data = await client.fetch_crags(book_id)
        log.info(f"found {len(crag_data)} crags in guidebook {book_id}")
        crag_counts = await self._update_crags(crag_data, log)
        log.info(crag_counts.summary("crags"))
        # Sector listings come embedded in the crag payloads.
        sector_counts = await self._update_sectors(crag_data, log)
        log.info(sector_counts.summary("sectors"))

    async def _update_crags(self, crag_data: list[dict], log: SyncLog) -> SyncCounts:
        counts = SyncCounts()
        for raw in crag_data:
            external_id = crag_external_id(raw)
            fields = map_crag(raw)
            try:
                await self._reconcile(CRAG, external_id, fields, counts, log, label=fields["name"])
            except Exception as e:
                counts.failed += 1
                log.error(f"Failed to sync crag {fields['name']} ({external_id}): {e}")
        return counts

    async def _update_sectors(self, crag_data: list[dict], log: SyncLog) -> SyncCounts:
        counts = SyncCounts()
        for raw in crag_data:
            crag_external = crag_external_id(raw)
            crag_ref = await self.refs.get(CRAG, self.source, crag_external)
            if crag_ref is None or crag_ref["local_id"] is None or not crag_ref["sync_children"]:
                continue

            for raw_sector in raw.get("TSECTOR") or []:
                external_id = str(raw_sector.get("sector_id", "")).strip()
                fields = map_sector(raw_sector)
                fields["crag_id"] = crag_ref["local_id"]
                try:
                    await self._reconcile(
                        SECTOR, external_id, fields, counts, log,
                        label=fields["name"],
                        parent_local_id=crag_ref["local_id"],
                        parent_external_id=crag_external,
                    )
                except Exception as e:
                    counts.failed += 1
                    log.error(f"Failed to sync sector {fields['name']} ({external_id}): {e}")
        return counts

    async def _update_routes(self, client: Any, sector_id: int, external_sector_id: str, log: SyncLog) -> SyncCounts:
        counts = SyncCounts()
        routes = await client.fetch_routes(external_sector_id)
        log.info(f"found {len(routes)} routes for sector id {sector_id} (sloper id {external_sector_id})")
        for raw in routes:
            if route_style(raw) == BOULDERING:
                counts.skipped += 1
                continue
            external_id = route_external_id(raw)
            fields = map_route(raw)
            fields["sector_id"] = sector_id
            try:
                await self._reconcile(
                    ROUTE, external_id, fields, counts, log,
                    label=fields["name"],
                    parent_local_id=sector_id,
                    parent_external_id=str(external_sector_id),
                )
            except Exception as e:
                counts.failed += 1
                log.error(
                    f"Failed to sync route {fields['name']} ({external_id}) in sectorid {sector_id}: {e}"
                )
        log.info(counts.summary("routes"))
        return counts

    async def _update_issues(self, client: Any, log: SyncLog) -> SyncCounts:
        counts = SyncCounts()
        issues = await client.fetch_issues()
        log.info(f"found {len(issues)} issues")
        for raw in issues:
            issue_id = str(raw.get("issue_id", "")).strip()
            route_external = str(raw.get("route_id", "")).strip()
            try:
                route_ref = await self.refs.get(ROUTE, self.source, route_external)
                if route_ref is None:
                    counts.skipped += 1
                    log.error(
                        f"No external route reference found for route {decode_text(raw.get('route_name'))} "
                        f"({route_external}) in issue {issue_id}"
                    )
                    continue
                if route_ref["local_id"] is None:
                    counts.skipped += 1
                    log.info(f"Skipping issue id {issue_id}: route sync on this route ({route_external}) is disabled (null)")
                    continue

                fields = map_issue(raw, self.tz_name)
                fields["route_id"] = route_ref["local_id"]
                if fields["status"] is None:
                    log.warning(f"Unknown status {raw.get('status')!r} on sloper issue {issue_id}; status left unset")
                    del fields["status"]

                await self._reconcile(
                    ISSUE, issue_id, fields, counts, log,
                    label=f"issue {issue_id}",
                    parent_external_id=route_external,
                    insert_defaults={"status": ""},
                )
            except Exception as e:
                counts.failed += 1
                log.error(f"Failed syncing sloper issue ({issue_id}): {e}")
        log.info(counts.summary("issues"))
        return counts

    # ── Matching, insert and update ─────────────────────────────────

    async def _reconcile(
        self,
        kind: EntityKind,
        external_id: str,
        fields: dict,
        counts: SyncCounts,
        log: SyncLog,
        label: str = "",
        parent_local_id: int | None = None,
        parent_external_id: str | None = None,
        insert_defaults: dict | None = None,
    ) -> None:
        if not external_id:
            raise ValueError(f"{kind.name} record has no sloper id")

        ref = await self.refs.get(kind, self.source, external_id)
        if ref is not None:
            if not ref["sync_data"] or ref["local_id"] is None:
                counts.skipped += 1
                return
            await self._update_existing(kind, ref, fields, counts)
            return

        await self._insert_new(
            kind, external_id, {**(insert_defaults or {}), **fields}, counts, log,
            label, parent_local_id, parent_external_id,
        )

    async def _update_existing(self, kind: EntityKind, ref: dict, fields: dict, counts: SyncCounts) -> None:
        if kind.has_forced_name and ref.get("forced_name"):
            fields = {**fields, "name": ref["forced_name"]}

        existing = await self.entities.get(kind, ref["local_id"])
        if existing is None:
            raise LookupError(f"local {kind.name} {ref['local_id']} referenced by sloper id {ref['external_id']} no longer exists")

        changes = {key: value for key, value in fields.items() if existing.get(key) != value}
        if not changes:
            counts.unchanged += 1
            return
        await self.entities.update(kind, ref["local_id"], changes)
        counts.updated += 1

    async def _insert_new(
        self,
        kind: EntityKind,
        external_id: str,
        fields: dict,
        counts: SyncCounts,
        log: SyncLog,
        label: str,
        parent_local_id: int | None,
        parent_external_id: str | None,
    ) -> None:
        try:
            new_id = await self.entities.insert(kind, fields)
        except ConstraintViolation as e:
            if not e.is_unique_name(kind.table):
                raise
            await self._resolve_duplicate(
                kind, external_id, fields, counts, log, label, parent_local_id, parent_external_id,
            )
            return
        await self.refs.insert(kind, self._new_ref(kind, external_id, new_id, parent_external_id))
        counts.inserted += 1

    async def _resolve_duplicate(
        self,
        kind: EntityKind,
        external_id: str,
        fields: dict,
        counts: SyncCounts,
        log: SyncLog,
        label: str,
        parent_local_id: int | None,
        parent_external_id: str | None,
    ) -> None:
        existing = await self.entities.find_by_name(kind, fields["name"], parent_local_id)
        if existing is None:
            raise LookupError(f"{kind.name} name {fields['name']!r} collided but no matching row was found")
        log.info(f"Duplicate {kind.name}: {existing['name']}")

        alias = await self.refs.find_alias(kind, self.source, existing["id"], parent_external_id, external_id)
        if alias is None:
            # Same name under a different upstream parent: the same real-world
            # object. Point at it but never overwrite it from this record.
            await self.refs.insert(
                kind, self._new_ref(kind, external_id, existing["id"], parent_external_id, sync_data=0),
            )
            counts.duplicates += 1
            log.info(
                f"Duplicate {kind.name} found with differing external parents (referencing): "
                f"{label} with sloper id {external_id}"
            )
            return

        placeholder = {**fields, "name": uuid.uuid4().hex[:16]}
        new_id = await self.entities.insert(kind, placeholder)
        await self.refs.insert(kind, self._new_ref(kind, external_id, new_id, parent_external_id))
        log.info(
            f"Duplicate {kind.name} found with shared source parent (inserting): "
            f"{existing['name']} with id {new_id} and sloper id {external_id}"
        )
        try:
            await self._rename_duplicates(
                kind, existing["name"], parent_local_id,
                existing["id"], existing.get("sort_order"),
                new_id, fields.get("sort_order"),
                log,
            )
        except RenameDepthExceeded:
            # No rename has been applied when the guard trips, so dropping the
            # placeholder restores the state before this record.
            await self.refs.delete(kind, self.source, external_id)
            await self.entities.delete(kind, new_id)
            log.info(f"Removed placeholder {kind.name} id {new_id} for sloper id {external_id}")
            raise
        counts.inserted += 1

    def _new_ref(
        self,
        kind: EntityKind,
        external_id: str,
        local_id: int,
        parent_external_id: str | None,
        sync_data: int = 1,
    ) -> dict:
        ref = {
            "external_id": external_id,
            "source": self.source,
            "local_id": local_id,
            "sync_data": sync_data,
        }
        if kind.parent_ref_column:
            ref[kind.parent_ref_column] = parent_external_id or ""
        return ref

    # ── Duplicate-name renaming ─────────────────────────────────────

    async def _rename_duplicates(
        self,
        kind: EntityKind,
        name: str,
        parent_id: int | None,
        first_id: int,
        first_sort: int | None,
        second_id: int,
        second_sort: int | None,
        log: SyncLog,
        depth: int = 0,
    ) -> None:
        """Give ``name`` to the lower sort order and the next suffix to the other.

        Recurses when the suffixed name is itself taken; each level bumps the
        trailing counter by one.
        """
        if depth >= self.rename_max_depth:
            raise RenameDepthExceeded(name, depth)

        new_name = get_incremental_name(name)
        if _sort_key(first_sort) <= _sort_key(second_sort):
            renamed_id, renamed_sort, kept_id = second_id, second_sort, first_id
        else:
            renamed_id, renamed_sort, kept_id = first_id, first_sort, second_id

        log.info(f'Renaming {kind.name} id {renamed_id} from "{name}" to "{new_name}"')
        try:
            await self._apply_name(kind, renamed_id, new_name)
        except ConstraintViolation as e:
            if not e.is_unique_name(kind.table):
                log.error(
                    f"Error resolving duplicate {kind.name} names in parent {parent_id}. "
                    f'Failed to update "{name}" to "{new_name}": {e}'
                )
            else:
                log.info("Rename triggered new conflict")
                next_duplicate = await self.entities.find_by_name(kind, new_name, parent_id)
                if next_duplicate is None:
                    log.error(f'Conflict on "{new_name}" in parent {parent_id} but no matching {kind.name} was found')
                else:
                    await self._rename_duplicates(
                        kind, new_name, parent_id,
                        renamed_id, renamed_sort,
                        next_duplicate["id"], next_duplicate.get("sort_order"),
                        log, depth + 1,
                    )

        try:
            await self._apply_name(kind, kept_id, name)
        except ConstraintViolation as e:
            log.error(
                f'Error renaming lower sorting {kind.name} id {kept_id} to "{name}" '
                f"after renaming overlapping {kind.name}: {e}"
            )
        else:
            log.info(f'Kept "{name}" on {kind.name} id {kept_id}')

    async def _apply_name(self, kind: EntityKind, entity_id: int, name: str) -> None:
        await self.entities.rename(kind, entity_id, name)
        await self.refs.set_forced_name(kind, self.source, entity_id, name)

    # ── Cleanup ─────────────────────────────────────────────────────

    async def cleanup_empties(self, log: SyncLog) -> None:
        """Drop sectors without routes and crags without sectors, refs first."""
        try:
            deleted = await self.entities.delete_empty_sector_refs(self.source)
            log.info(f"Deleted {deleted} empty sector refs")
            deleted = await self.entities.delete_empty_sectors()
            log.info(f"Deleted {deleted} empty sectors")
            deleted = await self.entities.delete_empty_crag_refs(self.source)
            log.info(f"Deleted {deleted} empty crag refs")
            deleted = await self.entities.delete_empty_crags()
            log.info(f"Deleted {deleted} empty crags")
        except Exception as e:
            log.error(f"Cleanup of empty sectors and crags failed: {e}")
