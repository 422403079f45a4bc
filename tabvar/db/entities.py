"""Table layout of the crag hierarchy and its external reference tables."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EntityKind:
    name: str
    table: str
    ref_table: str
    columns: tuple[str, ...]
    parent_column: str | None = None
    parent_ref_column: str | None = None
    parent_kind: str | None = None
    child_kind: str | None = None
    has_sync_children: bool = False
    has_forced_name: bool = False

    @property
    def ref_columns(self) -> tuple[str, ...]:
        cols = ["external_id", "source", "local_id", "sync_data"]
        if self.parent_ref_column:
            cols.append(self.parent_ref_column)
        if self.has_sync_children:
            cols.append("sync_children")
        if self.has_forced_name:
            cols.append("forced_name")
        return tuple(cols)

    @property
    def editable_ref_columns(self) -> tuple[str, ...]:
        return tuple(c for c in self.ref_columns if c in {"local_id", "sync_data", "sync_children", "forced_name"})


CRAG = EntityKind(
    name="crag",
    table="crag",
    ref_table="external_crag_ref",
    columns=("name", "latitude", "longitude"),
    child_kind="sector",
    has_sync_children=True,
    has_forced_name=True,
)

SECTOR = EntityKind(
    name="sector",
    table="sector",
    ref_table="external_sector_ref",
    columns=("name", "crag_id", "latitude", "longitude", "sort_order"),
    parent_column="crag_id",
    parent_ref_column="external_crag_id",
    parent_kind="crag",
    child_kind="route",
    has_sync_children=True,
    has_forced_name=True,
)

ROUTE = EntityKind(
    name="route",
    table="route",
    ref_table="external_route_ref",
    columns=(
        "name", "sector_id", "alt_names", "grade_yds", "climb_style",
        "sort_order", "bolt_count", "pitch_count", "first_ascent_by",
        "first_ascent_date", "route_built_date", "route_length",
        "latitude", "longitude", "status",
    ),
    parent_column="sector_id",
    parent_ref_column="external_sector_id",
    parent_kind="sector",
    has_forced_name=True,
)

ISSUE = EntityKind(
    name="issue",
    table="issue",
    ref_table="external_issue_ref",
    columns=(
        "route_id", "issue_type", "sub_issue_type", "status", "description",
        "is_flagged", "flagged_message", "bolts_affected", "reported_by",
        "reported_at", "last_modified",
    ),
    parent_column="route_id",
    parent_ref_column="external_route_id",
    parent_kind="route",
)

KINDS: dict[str, EntityKind] = {kind.name: kind for kind in (CRAG, SECTOR, ROUTE, ISSUE)}


def get_kind(name: str) -> EntityKind:
    try:
        return KINDS[name]
    except KeyError:
        raise ValueError(f"Unknown entity kind: {name}") from None


def check_columns(kind: EntityKind, fields: dict, allowed: tuple[str, ...] | None = None) -> None:
    """Reject column names outside the kind's whitelist before they reach SQL."""
    allowed = allowed if allowed is not None else kind.columns
    unknown = [key for key in fields if key not in allowed]
    if unknown:
        raise ValueError(f"Unknown {kind.name} column(s): {', '.join(sorted(unknown))}")
