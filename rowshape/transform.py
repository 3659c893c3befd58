"""Fetch a bounded row sample and fold it into nested documents."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterable, Sequence

from pydantic import TypeAdapter
from sqlglot import exp

from .errors import UnknownColumnsError
from .identifiers import sanitize
from .mapping import (
    MAX_PREVIEW_ROWS,
    MappingEntry,
    OutputDocument,
    fold_row,
    source_columns,
    validate_mapping,
)
from .schema import DEFAULT_SCHEMA, list_columns, missing_columns

LOG = logging.getLogger(__name__)

_DOCUMENTS = TypeAdapter(list[dict[str, Any]])


def build_select(table: str, columns: Sequence[str], *, schema: str = DEFAULT_SCHEMA) -> str:
    """Render the sample query for ``columns`` of ``schema.table``.

    Identifiers go through :func:`sanitize` first; the row limit is always the
    first bind parameter.
    """

    source = f"{sanitize(schema)}.{sanitize(table)}"
    select = exp.select(*(sanitize(column) for column in columns)).from_(source)
    return f"{select.sql(dialect='postgres')} LIMIT $1"


def clamp_limit(limit: int, *, max_rows: int = MAX_PREVIEW_ROWS) -> int:
    return max(1, min(int(limit), max_rows))


class TransformEngine:
    """Runs validated, parameterized reads and folds rows per a mapping."""

    def __init__(self, *, schema: str = DEFAULT_SCHEMA, max_rows: int = MAX_PREVIEW_ROWS) -> None:
        self._schema = schema
        self._max_rows = max_rows

    async def transform(
        self,
        pool: Any,
        table: str,
        limit: int,
        mapping: Iterable[MappingEntry],
    ) -> list[OutputDocument]:
        """Return one document per sampled row of ``table``.

        The mapping is validated before the pool is touched, and the column
        check runs before any row is read. Either every row folds cleanly or
        the whole call fails.
        """

        entries = list(mapping)
        validate_mapping(entries)
        columns = source_columns(entries)
        started = time.perf_counter()
        async with pool.acquire() as conn:
            available = await list_columns(conn, table, schema=self._schema)
            missing = missing_columns(available, columns)
            if missing:
                raise UnknownColumnsError(missing)
            statement = build_select(table, columns, schema=self._schema)
            rows = await conn.fetch(statement, clamp_limit(limit, max_rows=self._max_rows))
        documents = [fold_row(row, entries) for row in rows]
        LOG.debug(
            "Transformed sample",
            extra={
                "rows": len(documents),
                "columns": len(columns),
                "elapsed_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return documents


def documents_to_json(documents: Sequence[OutputDocument], *, indent: int | None = None) -> bytes:
    """Serialize documents to JSON; dates, decimals and UUIDs become strings."""

    return _DOCUMENTS.dump_json(list(documents), indent=indent)


__all__ = [
    "TransformEngine",
    "build_select",
    "clamp_limit",
    "documents_to_json",
]
