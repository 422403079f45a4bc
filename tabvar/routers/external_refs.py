"""External reference management API.

Lets an operator pause (``syncData``), stop descending (``syncChildren``),
redirect (``localId``) or pin the name (``forcedName``) of an imported record.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from tabvar.db import connection
from tabvar.db.entities import EntityKind, get_kind
from tabvar.db.factory import get_external_ref_repository
from tabvar.models import ExternalRef, ExternalRefUpdate

external_refs_router = APIRouter(prefix="/api/external-refs", tags=["external-refs"])

_FIELD_COLUMNS = {
    "localId": "local_id",
    "syncData": "sync_data",
    "syncChildren": "sync_children",
    "forcedName": "forced_name",
}


def _resolve_kind(kind: str) -> EntityKind:
    try:
        return get_kind(kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _ref_from_row(kind: EntityKind, row: dict) -> ExternalRef:
    sync_children = row.get("sync_children")
    return ExternalRef(
        kind=kind.name,
        externalId=row["external_id"],
        source=row["source"],
        localId=row.get("local_id"),
        syncData=bool(row.get("sync_data")),
        syncChildren=bool(sync_children) if sync_children is not None else None,
        forcedName=row.get("forced_name"),
        parentExternalId=row.get(kind.parent_ref_column) if kind.parent_ref_column else None,
    )


def _to_columns(kind: EntityKind, update: ExternalRefUpdate) -> dict:
    columns: dict = {}
    for field, value in update.model_dump(exclude_unset=True).items():
        column = _FIELD_COLUMNS[field]
        if column not in kind.editable_ref_columns:
            raise HTTPException(status_code=400, detail=f"{kind.name} references have no {field}")
        if column in {"sync_data", "sync_children"}:
            if value is None:
                raise HTTPException(status_code=400, detail=f"{field} cannot be null")
            value = 1 if value else 0
        columns[column] = value
    return columns


@external_refs_router.get("/{kind}", response_model=list[ExternalRef])
async def list_external_refs(kind: str, source: str | None = Query(None)):
    entity_kind = _resolve_kind(kind)
    db = await connection.get_connection()
    rows = await get_external_ref_repository(db).list_all(entity_kind, source)
    return [_ref_from_row(entity_kind, row) for row in rows]


@external_refs_router.patch("/{kind}/{source}/{external_id}", response_model=ExternalRef)
async def update_external_ref(kind: str, source: str, external_id: str, update: ExternalRefUpdate):
    entity_kind = _resolve_kind(kind)
    columns = _to_columns(entity_kind, update)
    db = await connection.get_connection()
    repo = get_external_ref_repository(db)
    if await repo.get(entity_kind, source, external_id) is None:
        raise HTTPException(status_code=404, detail=f"No {kind} reference {source}:{external_id}")
    row = await repo.update(entity_kind, source, external_id, columns)
    return _ref_from_row(entity_kind, row)
