"""Sloper sync API.

Every sync endpoint answers 200 with the run's log, even when records
failed or the run aborted; the log carries the outcome.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from tabvar.models import SloperSyncResult

logger = logging.getLogger("tabvar.sync")

sync_router = APIRouter(prefix="/api/sync/sloper", tags=["sync"])


class CragSyncRequest(BaseModel):
    bookIndex: int = 0


class RouteSyncRequest(BaseModel):
    sectorId: int
    externalSectorId: str = Field(..., min_length=1)


def _get_sloper_sync(request: Request):
    engine = getattr(request.app.state, "sloper_sync", None)
    if not engine:
        raise HTTPException(status_code=503, detail="Sloper sync engine not initialized")
    return engine


@sync_router.post("/crags", response_model=SloperSyncResult)
async def sync_crags_and_sectors(request: Request, req: CragSyncRequest):
    """Sync crags and their sectors for one guidebook."""
    engine = _get_sloper_sync(request)
    result = await engine.sync_crags_and_sectors(req.bookIndex)
    return SloperSyncResult(**result)


@sync_router.post("/routes", response_model=SloperSyncResult)
async def sync_routes(request: Request, req: RouteSyncRequest):
    """Sync the routes of one sector."""
    engine = _get_sloper_sync(request)
    result = await engine.sync_routes(req.sectorId, req.externalSectorId)
    return SloperSyncResult(**result)


@sync_router.post("/issues", response_model=SloperSyncResult)
async def sync_issues(request: Request):
    """Drop empty sectors/crags, then sync every issue."""
    engine = _get_sloper_sync(request)
    result = await engine.sync_issues()
    return SloperSyncResult(**result)


@sync_router.post("/all", response_model=SloperSyncResult)
async def sync_all(request: Request):
    engine = _get_sloper_sync(request)
    result = await engine.sync_all()
    logger.info(f"Full sloper sync finished with {len(result['log'])} log lines")
    return SloperSyncResult(**result)
