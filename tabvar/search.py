"""Prefix search over crag, sector and route names."""
from __future__ import annotations

import re
from typing import Any

from tabvar.db.factory import get_hierarchy_repository
from tabvar.models import SearchResult

SEARCH_MODES = ("global", "allObjects", "routesOnly")
DEFAULT_LIMIT = 10

_UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9\s]")


def clean_query(query: str | None) -> str:
    """Keep letters, digits and whitespace; collapse runs of whitespace."""
    return " ".join(_UNSAFE_CHARS_RE.sub("", query or "").split())


def _crag_result(row: dict) -> SearchResult:
    return SearchResult(type="crag", cragId=row["crag_id"], cragName=row["crag_name"])


def _sector_result(row: dict) -> SearchResult:
    return SearchResult(
        type="sector",
        sectorId=row["sector_id"],
        cragId=row.get("crag_id"),
        sectorName=row["sector_name"],
        cragName=row.get("crag_name"),
    )


def _route_result(row: dict) -> SearchResult:
    return SearchResult(
        type="route",
        routeId=row["route_id"],
        sectorId=row.get("sector_id"),
        cragId=row.get("crag_id"),
        routeName=row["route_name"],
        routeAltNames=row.get("alt_names"),
        sectorName=row.get("sector_name"),
        cragName=row.get("crag_name"),
        gradeYds=row.get("grade_yds"),
        boltCount=row.get("bolt_count"),
        pitchCount=row.get("pitch_count"),
    )


async def search(db: Any, query: str, mode: str = "global", limit: int = DEFAULT_LIMIT) -> list[SearchResult]:
    """Find names with a word starting with ``query``.

    ``global`` matches routes by their own, alternate, sector or crag name.
    ``routesOnly`` matches routes by their own name. ``allObjects`` lists
    matching crags, then sectors, then routes, cut to ``limit`` overall.
    """
    if mode not in SEARCH_MODES:
        raise ValueError("optional parameter <searchMode> must be one of: allObjects, routesOnly, or global (default)")
    repo = get_hierarchy_repository(db)

    if mode != "allObjects":
        rows = await repo.search_routes(query, limit, match_parents=(mode == "global"))
        return [_route_result(row) for row in rows]

    results = [_crag_result(row) for row in await repo.search_crags(query, limit)]
    if len(results) < limit:
        rows = await repo.search_sectors(query, limit - len(results))
        results.extend(_sector_result(row) for row in rows)
    if len(results) < limit:
        rows = await repo.search_routes(query, limit - len(results))
        results.extend(_route_result(row) for row in rows)
    return results
