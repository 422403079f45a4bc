"""Name search API."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from tabvar.db import connection
from tabvar.models import SearchResult
from tabvar.search import DEFAULT_LIMIT, clean_query, search

search_router = APIRouter(prefix="/api/search", tags=["search"])


@search_router.get("", response_model=list[SearchResult])
async def search_names(
    query: str | None = Query(None, description="Name prefix; punctuation is ignored"),
    search_mode: str = Query("global", alias="searchMode", description="global, allObjects or routesOnly"),
    limit: int = Query(DEFAULT_LIMIT, description="Maximum number of results; non-positive means the default"),
):
    term = clean_query(query)
    if not term:
        raise HTTPException(status_code=400, detail="parameter <query> is required")
    db = await connection.get_connection()
    try:
        return await search(db, term, search_mode, limit if limit > 0 else DEFAULT_LIMIT)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
