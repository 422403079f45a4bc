"""Translate Sloper API records into local column values.

Sloper reports issues with numeric category/type/detail codes, local-time
timestamps and HTML-escaped free text. Everything here is a pure function.
"""
from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from tabvar import config
from tabvar.sloper.exceptions import DateFormatError

SLOPER_DATETIME_FORMAT = "%m/%d/%Y %I:%M:%S %p"  # e.g. 6/1/2024 3:00:00 PM
BOULDERING = "Bouldering"

ISSUE_CATEGORIES = {
    0: "Unknown",  # not normally selectable upstream
    1: "All Bolts",
    2: "Bolts",
    3: "Anchor",
    4: "Rock",
}

ISSUE_TYPES = {
    0: "",  # no type selected
    1: "Loose",
    2: "Missing",
    3: "Worn",
    4: "Loose block",
    5: "Loose flake",
    6: "Loose block",  # rock perched
}

ISSUE_DETAILS = {
    1: "Missing (bolt and hanger)",
    2: "Loose nut",
    3: "Loose bolt",
    4: "Loose glue-in",
    5: "Missing (hanger)",
    6: "Missing (hanger)",
    7: "Missing (bolt and hanger)",
    8: "Rusted",
    9: "Outdated",
    10: "Worn",
    11: "Other",
}

ISSUE_STATUSES = {
    1: "Reported",
    2: "Viewed",
    3: "In Progress",
    4: "Completed",
    5: "In Moderation",
}


def _coerce_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _optional_int(value: Any) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _optional_float(value: Any) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def decode_text(value: Any) -> str:
    """HTML-entity decode and trim a Sloper free-text field."""
    if value is None:
        return ""
    return html.unescape(str(value)).strip()


def map_issue_category(category_id: Any) -> str:
    return ISSUE_CATEGORIES.get(_coerce_int(category_id), "Unknown")


def map_issue_detail(type_id: Any, detail_id: Any) -> str | None:
    detail = ISSUE_DETAILS.get(_coerce_int(detail_id))
    if detail is not None:
        return detail
    return ISSUE_TYPES.get(_coerce_int(type_id))


def map_status(status_id: Any) -> str | None:
    return ISSUE_STATUSES.get(_coerce_int(status_id))


def convert_timestamp(value: Any, tz_name: str | None = None) -> str:
    """Sloper local wall-clock time → ISO-8601 UTC string."""
    if not isinstance(value, str):
        raise DateFormatError(value)
    try:
        local = datetime.strptime(value.strip(), SLOPER_DATETIME_FORMAT)
    except ValueError:
        raise DateFormatError(value) from None
    zoned = local.replace(tzinfo=ZoneInfo(tz_name or config.SLOPER_TIMEZONE))
    utc = zoned.astimezone(timezone.utc)
    return utc.isoformat().replace("+00:00", "Z")


# ── Record mappers ──────────────────────────────────────────────────

def crag_external_id(raw: dict) -> str:
    return str((raw.get("TCRAG") or {}).get("crag_id", "")).strip()


def map_crag(raw: dict) -> dict[str, Any]:
    crag = raw.get("TCRAG") or {}
    return {
        "name": decode_text(crag.get("crag_name")),
        "latitude": _optional_float(crag.get("latitude")),
        "longitude": _optional_float(crag.get("longitude")),
    }


def map_sector(raw: dict) -> dict[str, Any]:
    fields: dict[str, Any] = {"name": decode_text(raw.get("sector_name"))}
    # Only overwrite local values the crag payload actually carries.
    if "sort_order" in raw:
        fields["sort_order"] = _optional_int(raw.get("sort_order"))
    if "latitude" in raw:
        fields["latitude"] = _optional_float(raw.get("latitude"))
    if "longitude" in raw:
        fields["longitude"] = _optional_float(raw.get("longitude"))
    return fields


def route_external_id(raw: dict) -> str:
    return str((raw.get("TROUTE") or {}).get("route_id", "")).strip()


def route_style(raw: dict) -> str:
    return decode_text((raw.get("TROUTE_TYPE") or {}).get("route_type"))


def map_route(raw: dict) -> dict[str, Any]:
    route = raw.get("TROUTE") or {}
    return {
        "name": decode_text(route.get("route_name")),
        "grade_yds": _optional_text((raw.get("TTECH_GRADE") or {}).get("tech_grade")),
        "climb_style": route_style(raw) or None,
        "sort_order": _optional_int(route.get("sort_order")),
        "bolt_count": _optional_int(route.get("number_of_bolts")),
        "first_ascent_by": decode_text(route.get("first_ascent_name")),
        "first_ascent_date": _optional_text(route.get("first_ascent_date")),
        "route_built_date": _optional_text(route.get("route_set_date")),
        "route_length": _optional_float(route.get("route_length")),
    }


def map_issue(raw: dict, tz_name: str | None = None) -> dict[str, Any]:
    """Map one Sloper issue. ``status`` is None when the code is unknown.

    Raises DateFormatError when either timestamp is malformed.
    """
    issue: dict[str, Any] = {
        "description": decode_text(raw.get("comments")),
        "issue_type": map_issue_category(raw.get("issue_category_id")),
        "sub_issue_type": map_issue_detail(raw.get("issue_type_id"), raw.get("issue_type_detail_id")),
        "status": map_status(raw.get("status")),
        "bolts_affected": _optional_text(raw.get("bolt_numbers")),  # formatted as 1|2|3
        "reported_by": decode_text(raw.get("user_name")),
        "reported_at": convert_timestamp(raw.get("date_reported"), tz_name),
        "last_modified": convert_timestamp(raw.get("date_modified"), tz_name),
    }
    notice = decode_text((raw.get("TROUTE") or {}).get("route_safety_notice"))
    if notice:
        issue["is_flagged"] = 1
        issue["flagged_message"] = notice
    else:
        issue["is_flagged"] = 0
    return issue
