"""Read-only crag API."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException

from tabvar.crag_loader import list_crags, load_crag_tree
from tabvar.db import connection
from tabvar.models import Crag

crags_router = APIRouter(prefix="/api/crags", tags=["crags"])


@crags_router.get("", response_model=list[Crag])
async def get_crags():
    """List all crags without their children."""
    db = await connection.get_connection()
    return await list_crags(db)


@crags_router.get("/{crag_id}", response_model=Crag)
async def get_crag(crag_id: int):
    """Get one crag with sectors, routes, issues and attachments."""
    db = await connection.get_connection()
    crag = await load_crag_tree(db, crag_id)
    if crag is None:
        raise HTTPException(status_code=404, detail=f"Crag {crag_id} not found")
    return crag
