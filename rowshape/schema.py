"""Schema introspection helpers backed by information_schema."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from .errors import UnknownTableError

DEFAULT_SCHEMA = "public"

_TABLES_QUERY = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = $1 AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

_TABLE_EXISTS_QUERY = """
    SELECT 1
    FROM information_schema.tables
    WHERE table_schema = $1 AND table_type = 'BASE TABLE' AND table_name = $2
"""

_COLUMNS_QUERY = """
    SELECT column_name, data_type
    FROM information_schema.columns
    WHERE table_schema = $1 AND table_name = $2
    ORDER BY ordinal_position
"""


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """Column name and declared type as reported by the database."""

    name: str
    type: str


async def list_tables(conn: Any, *, schema: str = DEFAULT_SCHEMA) -> list[str]:
    rows = await conn.fetch(_TABLES_QUERY, schema)
    return [str(row["table_name"]) for row in rows]


async def table_exists(conn: Any, table: str, *, schema: str = DEFAULT_SCHEMA) -> bool:
    return await conn.fetchval(_TABLE_EXISTS_QUERY, schema, table) is not None


async def list_columns(conn: Any, table: str, *, schema: str = DEFAULT_SCHEMA) -> list[ColumnDescriptor]:
    """Return the columns of ``table``; raises :class:`UnknownTableError` if it is missing."""

    if not await table_exists(conn, table, schema=schema):
        raise UnknownTableError(table)
    rows = await conn.fetch(_COLUMNS_QUERY, schema, table)
    return [ColumnDescriptor(name=str(row["column_name"]), type=str(row["data_type"])) for row in rows]


def missing_columns(available: Iterable[ColumnDescriptor], wanted: Iterable[str]) -> list[str]:
    """Return the names in ``wanted`` that are absent from ``available``, in request order."""

    names = {column.name for column in available}
    return [name for name in wanted if name not in names]


__all__ = [
    "ColumnDescriptor",
    "DEFAULT_SCHEMA",
    "list_columns",
    "list_tables",
    "missing_columns",
    "table_exists",
]
