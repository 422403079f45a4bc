"""Database schema creation and versioning.

All CREATE TABLE statements for the crag database.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("tabvar.db")

SCHEMA_VERSION = 1

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── 1. Crag hierarchy ──────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS crag (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL UNIQUE,
    latitude     REAL,
    longitude    REAL,
    has_sectors  INTEGER NOT NULL DEFAULT 1,
    created_at   TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS sector (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    crag_id      INTEGER REFERENCES crag(id),
    name         TEXT NOT NULL,
    latitude     REAL,
    longitude    REAL,
    sort_order   INTEGER,
    created_at   TEXT DEFAULT (datetime('now')),
    UNIQUE (crag_id, name)
);

CREATE INDEX IF NOT EXISTS idx_sector_crag ON sector(crag_id, sort_order);

CREATE TABLE IF NOT EXISTS route (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    sector_id         INTEGER REFERENCES sector(id),
    name              TEXT NOT NULL,
    alt_names         TEXT,
    grade_yds         TEXT,
    climb_style       TEXT,
    sort_order        INTEGER,
    bolt_count        INTEGER,
    pitch_count       INTEGER,
    first_ascent_by   TEXT,
    first_ascent_date TEXT,
    route_built_date  TEXT,
    route_length      REAL,
    latitude          REAL,
    longitude         REAL,
    status            TEXT,
    created_at        TEXT DEFAULT (datetime('now')),
    UNIQUE (sector_id, name)
);

CREATE INDEX IF NOT EXISTS idx_route_sector ON route(sector_id, sort_order);

CREATE TABLE IF NOT EXISTS issue (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    route_id         INTEGER NOT NULL REFERENCES route(id),
    issue_type       TEXT NOT NULL,
    sub_issue_type   TEXT,
    status           TEXT NOT NULL,
    description      TEXT,
    is_flagged       INTEGER DEFAULT 0,
    flagged_message  TEXT,
    bolts_affected   TEXT,
    reported_by      TEXT,
    reported_at      TEXT,
    last_modified    TEXT,
    created_at       TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_issue_route ON issue(route_id);

CREATE TABLE IF NOT EXISTS issue_attachment (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_id    INTEGER NOT NULL REFERENCES issue(id) ON DELETE CASCADE,
    name        TEXT,
    type        TEXT NOT NULL,
    url         TEXT NOT NULL,
    created_at  TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_attachment_issue ON issue_attachment(issue_id);

-- ── 2. External references (one row per upstream record) ──────────
CREATE TABLE IF NOT EXISTS external_crag_ref (
    external_id    TEXT NOT NULL,
    source         TEXT NOT NULL,
    local_id       INTEGER,
    sync_data      INTEGER NOT NULL DEFAULT 1,
    sync_children  INTEGER NOT NULL DEFAULT 1,
    forced_name    TEXT,
    PRIMARY KEY (source, external_id)
);

CREATE TABLE IF NOT EXISTS external_sector_ref (
    external_id       TEXT NOT NULL,
    source            TEXT NOT NULL,
    local_id          INTEGER,
    external_crag_id  TEXT NOT NULL,
    sync_data         INTEGER NOT NULL DEFAULT 1,
    sync_children     INTEGER NOT NULL DEFAULT 1,
    forced_name       TEXT,
    PRIMARY KEY (source, external_id)
);

CREATE TABLE IF NOT EXISTS external_route_ref (
    external_id         TEXT NOT NULL,
    source              TEXT NOT NULL,
    local_id            INTEGER,
    external_sector_id  TEXT NOT NULL,
    sync_data           INTEGER NOT NULL DEFAULT 1,
    forced_name         TEXT,
    PRIMARY KEY (source, external_id)
);

CREATE TABLE IF NOT EXISTS external_issue_ref (
    external_id        TEXT NOT NULL,
    source             TEXT NOT NULL,
    local_id           INTEGER,
    external_route_id  TEXT NOT NULL,
    sync_data          INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY (source, external_id)
);

CREATE INDEX IF NOT EXISTS idx_crag_ref_local   ON external_crag_ref(local_id);
CREATE INDEX IF NOT EXISTS idx_sector_ref_local ON external_sector_ref(local_id);
CREATE INDEX IF NOT EXISTS idx_route_ref_local  ON external_route_ref(local_id, external_sector_id);
CREATE INDEX IF NOT EXISTS idx_issue_ref_local  ON external_issue_ref(local_id);
"""


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables. Idempotent."""
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except aiosqlite.OperationalError:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info(f"Schema is up to date (version {current_version})")
        return

    logger.info(f"Running migrations: {current_version} → {SCHEMA_VERSION}")

    await db.executescript(_TABLES)

    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info(f"Migrations complete, schema version {SCHEMA_VERSION}")
