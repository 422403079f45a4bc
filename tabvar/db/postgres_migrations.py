"""PostgreSQL schema creation and versioning."""
from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger("tabvar.db")

SCHEMA_VERSION = 1

_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS crag (
    id           SERIAL PRIMARY KEY,
    name         TEXT NOT NULL,
    latitude     DOUBLE PRECISION,
    longitude    DOUBLE PRECISION,
    has_sectors  INTEGER NOT NULL DEFAULT 1,
    created_at   TEXT DEFAULT to_char(now() AT TIME ZONE 'UTC', 'YYYY-MM-DD HH24:MI:SS'),
    CONSTRAINT crag_name_key UNIQUE (name)
);

CREATE TABLE IF NOT EXISTS sector (
    id           SERIAL PRIMARY KEY,
    crag_id      INTEGER REFERENCES crag(id),
    name         TEXT NOT NULL,
    latitude     DOUBLE PRECISION,
    longitude    DOUBLE PRECISION,
    sort_order   INTEGER,
    created_at   TEXT DEFAULT to_char(now() AT TIME ZONE 'UTC', 'YYYY-MM-DD HH24:MI:SS'),
    CONSTRAINT sector_crag_name_key UNIQUE (crag_id, name)
);

CREATE INDEX IF NOT EXISTS idx_sector_crag ON sector(crag_id, sort_order);

CREATE TABLE IF NOT EXISTS route (
    id                SERIAL PRIMARY KEY,
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
    route_length      DOUBLE PRECISION,
    latitude          DOUBLE PRECISION,
    longitude         DOUBLE PRECISION,
    status            TEXT,
    created_at        TEXT DEFAULT to_char(now() AT TIME ZONE 'UTC', 'YYYY-MM-DD HH24:MI:SS'),
    CONSTRAINT route_sector_name_key UNIQUE (sector_id, name)
);

CREATE INDEX IF NOT EXISTS idx_route_sector ON route(sector_id, sort_order);

CREATE TABLE IF NOT EXISTS issue (
    id               SERIAL PRIMARY KEY,
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
    created_at       TEXT NOT NULL DEFAULT to_char(now() AT TIME ZONE 'UTC', 'YYYY-MM-DD HH24:MI:SS')
);

CREATE INDEX IF NOT EXISTS idx_issue_route ON issue(route_id);

CREATE TABLE IF NOT EXISTS issue_attachment (
    id          SERIAL PRIMARY KEY,
    issue_id    INTEGER NOT NULL REFERENCES issue(id) ON DELETE CASCADE,
    name        TEXT,
    type        TEXT NOT NULL,
    url         TEXT NOT NULL,
    created_at  TEXT DEFAULT to_char(now() AT TIME ZONE 'UTC', 'YYYY-MM-DD HH24:MI:SS')
);

CREATE INDEX IF NOT EXISTS idx_attachment_issue ON issue_attachment(issue_id);

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


async def run_migrations(db: asyncpg.Pool) -> None:
    """Create all tables. Idempotent."""
    async with db.acquire() as conn:
        exists = await conn.fetchval("SELECT to_regclass('schema_version') IS NOT NULL")
        current_version = 0
        if exists:
            current_version = await conn.fetchval("SELECT COALESCE(MAX(version), 0) FROM schema_version") or 0

        if current_version >= SCHEMA_VERSION:
            logger.info(f"Schema is up to date (version {current_version})")
            return

        logger.info(f"Running migrations: {current_version} → {SCHEMA_VERSION}")
        async with conn.transaction():
            await conn.execute(_TABLES)
            await conn.execute("INSERT INTO schema_version (version) VALUES ($1)", SCHEMA_VERSION)
        logger.info(f"Migrations complete, schema version {SCHEMA_VERSION}")
