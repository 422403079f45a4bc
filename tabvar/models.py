"""Pydantic models matching the frontend TypeScript types."""
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional

# ── Crag hierarchy ──────────────────────────────────────────────────

class IssueAttachment(BaseModel):
    id: int
    issueId: int
    url: str
    type: str
    name: Optional[str] = None
    createdAt: Optional[str] = None


class Issue(BaseModel):
    id: int
    routeId: int
    issueType: str
    subIssueType: Optional[str] = None
    status: str
    description: Optional[str] = None
    boltsAffected: Optional[str] = None  # "1|2|3"
    createdAt: Optional[str] = None
    reportedAt: Optional[str] = None
    reportedBy: Optional[str] = None
    lastModified: Optional[str] = None
    isFlagged: bool = False
    flaggedMessage: Optional[str] = None
    attachments: list[IssueAttachment] = Field(default_factory=list)


class Route(BaseModel):
    id: int
    name: str
    sectorId: Optional[int] = None
    altNames: Optional[str] = None
    boltCount: Optional[int] = None
    climbStyle: Optional[str] = None
    firstAscentBy: Optional[str] = None
    firstAscentDate: Optional[str] = None
    gradeYds: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    pitchCount: Optional[int] = None
    routeBuiltDate: Optional[str] = None
    routeLength: Optional[float] = None
    sortOrder: Optional[int] = None
    status: Optional[str] = None
    createdAt: Optional[str] = None
    issues: list[Issue] = Field(default_factory=list)


class Sector(BaseModel):
    id: int
    name: str
    cragId: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    sortOrder: Optional[int] = None
    createdAt: Optional[str] = None
    routes: list[Route] = Field(default_factory=list)


class Crag(BaseModel):
    id: int
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    hasSectors: bool = True
    createdAt: Optional[str] = None
    sectors: list[Sector] = Field(default_factory=list)


# ── Search ──────────────────────────────────────────────────────────

class SearchResult(BaseModel):
    type: str  # "crag" | "sector" | "route"
    routeId: Optional[int] = None
    sectorId: Optional[int] = None
    cragId: Optional[int] = None
    routeName: Optional[str] = None
    routeAltNames: Optional[str] = None
    sectorName: Optional[str] = None
    cragName: Optional[str] = None
    gradeYds: Optional[str] = None
    boltCount: Optional[int] = None
    pitchCount: Optional[int] = None


# ── External sync ───────────────────────────────────────────────────

class SyncedSector(BaseModel):
    external_id: str
    local_id: int
    name: str


class SloperSyncResult(BaseModel):
    log: list[str] = Field(default_factory=list)
    sectorList: Optional[list[SyncedSector]] = None
    syncCount: Optional[int] = None


class ExternalRef(BaseModel):
    kind: str
    externalId: str
    source: str
    localId: Optional[int] = None
    syncData: bool = True
    syncChildren: Optional[bool] = None
    forcedName: Optional[str] = None
    parentExternalId: Optional[str] = None


class ExternalRefUpdate(BaseModel):
    localId: Optional[int] = None
    syncData: Optional[bool] = None
    syncChildren: Optional[bool] = None
    forcedName: Optional[str] = None
