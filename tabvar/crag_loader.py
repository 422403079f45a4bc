"""Assemble a crag with its sectors, routes, issues and attachments.

Each level is fetched with one query ordered the same way as its parent
list, then attached to its parents in a single sequential pass.
"""
from __future__ import annotations

from typing import Any, Callable, TypeVar

from tabvar.db.entities import CRAG
from tabvar.db.factory import get_hierarchy_repository
from tabvar.models import Crag, Issue, IssueAttachment, Route, Sector

T = TypeVar("T")


def _crag_from_row(row: dict) -> Crag:
    return Crag(
        id=row["id"],
        name=row["name"],
        latitude=row.get("latitude"),
        longitude=row.get("longitude"),
        hasSectors=bool(row.get("has_sectors", 1)),
        createdAt=row.get("created_at"),
    )


def _sector_from_row(row: dict) -> Sector:
    return Sector(
        id=row["id"],
        name=row["name"],
        cragId=row.get("crag_id"),
        latitude=row.get("latitude"),
        longitude=row.get("longitude"),
        sortOrder=row.get("sort_order"),
        createdAt=row.get("created_at"),
    )


def _route_from_row(row: dict) -> Route:
    return Route(
        id=row["id"],
        name=row["name"],
        sectorId=row.get("sector_id"),
        altNames=row.get("alt_names"),
        boltCount=row.get("bolt_count"),
        climbStyle=row.get("climb_style"),
        firstAscentBy=row.get("first_ascent_by"),
        firstAscentDate=row.get("first_ascent_date"),
        gradeYds=row.get("grade_yds"),
        latitude=row.get("latitude"),
        longitude=row.get("longitude"),
        pitchCount=row.get("pitch_count"),
        routeBuiltDate=row.get("route_built_date"),
        routeLength=row.get("route_length"),
        sortOrder=row.get("sort_order"),
        status=row.get("status"),
        createdAt=row.get("created_at"),
    )


def _issue_from_row(row: dict) -> Issue:
    return Issue(
        id=row["id"],
        routeId=row["route_id"],
        issueType=row["issue_type"],
        subIssueType=row.get("sub_issue_type"),
        status=row["status"],
        description=row.get("description"),
        boltsAffected=row.get("bolts_affected"),
        createdAt=row.get("created_at"),
        reportedAt=row.get("reported_at"),
        reportedBy=row.get("reported_by"),
        lastModified=row.get("last_modified"),
        isFlagged=bool(row.get("is_flagged")),
        flaggedMessage=row.get("flagged_message"),
    )


def _attachment_from_row(row: dict) -> IssueAttachment:
    return IssueAttachment(
        id=row["id"],
        issueId=row["issue_id"],
        url=row["url"],
        type=row["type"],
        name=row.get("name"),
        createdAt=row.get("created_at"),
    )


def _attach_children(
    parents: list[Any],
    rows: list[dict],
    parent_key: str,
    convert: Callable[[dict], T],
    attach: Callable[[Any], list[T]],
) -> list[T]:
    """Distribute ``rows`` (ordered like ``parents``) onto their parents."""
    children: list[T] = []
    index = 0
    for parent in parents:
        bucket = attach(parent)
        while index < len(rows) and rows[index][parent_key] == parent.id:
            child = convert(rows[index])
            bucket.append(child)
            children.append(child)
            index += 1
    return children


async def list_crags(db: Any) -> list[Crag]:
    repo = get_hierarchy_repository(db)
    return [_crag_from_row(row) for row in await repo.list_crags()]


async def load_crag_tree(db: Any, crag_id: int) -> Crag | None:
    repo = get_hierarchy_repository(db)
    row = await repo.get(CRAG, crag_id)
    if row is None:
        return None

    crag = _crag_from_row(row)
    crag.sectors = [_sector_from_row(r) for r in await repo.list_sectors_for_crag(crag_id)]

    route_rows = await repo.list_routes_for_sectors([s.id for s in crag.sectors])
    routes = _attach_children(crag.sectors, route_rows, "sector_id", _route_from_row, lambda s: s.routes)

    issue_rows = await repo.list_issues_for_routes([r.id for r in routes])
    issues = _attach_children(routes, issue_rows, "route_id", _issue_from_row, lambda r: r.issues)

    attachment_rows = await repo.list_attachments_for_issues([i.id for i in issues])
    _attach_children(issues, attachment_rows, "issue_id", _attachment_from_row, lambda i: i.attachments)
    return crag
