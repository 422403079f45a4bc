"""Typed storage errors shared by the SQLite and PostgreSQL repositories."""
from __future__ import annotations

import re
import sqlite3
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg

_SQLITE_CONSTRAINT_RE = re.compile(r"^(UNIQUE|NOT NULL|CHECK|FOREIGN KEY) constraint failed(?::\s*(.*))?$")
_PG_KEY_DETAIL_RE = re.compile(r"Key \(([^)]*)\)=")

_SQLITE_KINDS = {
    "UNIQUE": "unique",
    "NOT NULL": "not_null",
    "CHECK": "check",
    "FOREIGN KEY": "foreign_key",
}

_PG_KINDS = {
    asyncpg.UniqueViolationError: "unique",
    asyncpg.NotNullViolationError: "not_null",
    asyncpg.CheckViolationError: "check",
    asyncpg.ForeignKeyViolationError: "foreign_key",
}


class ConstraintViolation(Exception):
    """A write was rejected by a table constraint.

    ``kind`` is one of ``unique``, ``not_null``, ``check``, ``foreign_key``.
    ``table`` and ``columns`` are best effort: SQLite does not report them
    for foreign key failures.
    """

    def __init__(self, kind: str, table: str | None = None, columns: tuple[str, ...] = (), message: str = ""):
        self.kind = kind
        self.table = table
        self.columns = columns
        super().__init__(message or f"{kind} constraint failed on {table}({', '.join(columns)})")

    @property
    def column(self) -> str | None:
        return self.columns[-1] if self.columns else None

    def is_unique_name(self, table: str) -> bool:
        return self.kind == "unique" and self.table == table and "name" in self.columns


def from_sqlite_error(error: sqlite3.IntegrityError) -> ConstraintViolation:
    message = str(error)
    match = _SQLITE_CONSTRAINT_RE.match(message)
    if not match:
        return ConstraintViolation("unknown", message=message)

    kind = _SQLITE_KINDS[match.group(1)]
    table: str | None = None
    columns: list[str] = []
    for qualified in (match.group(2) or "").split(","):
        qualified = qualified.strip()
        if "." not in qualified:
            continue
        table, column = qualified.split(".", 1)
        columns.append(column)
    return ConstraintViolation(kind, table, tuple(columns), message)


def from_postgres_error(error: asyncpg.IntegrityConstraintViolationError) -> ConstraintViolation:
    kind = "unknown"
    for error_type, label in _PG_KINDS.items():
        if isinstance(error, error_type):
            kind = label
            break

    columns: tuple[str, ...] = ()
    detail = getattr(error, "detail", None) or ""
    match = _PG_KEY_DETAIL_RE.search(detail)
    if match:
        columns = tuple(part.strip() for part in match.group(1).split(","))
    elif getattr(error, "column_name", None):
        columns = (error.column_name,)
    return ConstraintViolation(kind, getattr(error, "table_name", None), columns, str(error))


@asynccontextmanager
async def sqlite_constraints() -> AsyncIterator[None]:
    try:
        yield
    except sqlite3.IntegrityError as e:
        raise from_sqlite_error(e) from e


@asynccontextmanager
async def postgres_constraints() -> AsyncIterator[None]:
    try:
        yield
    except asyncpg.IntegrityConstraintViolationError as e:
        raise from_postgres_error(e) from e
