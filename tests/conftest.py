"""In-memory stand-ins for asyncpg pools and connections."""

from __future__ import annotations

import re
from typing import Any

import pytest

USERS_COLUMNS = [
    ("id", "integer"),
    ("first_name", "character varying"),
    ("email", "character varying"),
]

USERS_ROWS = [
    {"id": 1, "first_name": "John", "email": "john@x.com"},
    {"id": 2, "first_name": "Ava", "email": "ava.chen@example.com"},
    {"id": 3, "first_name": "Liam", "email": None},
]

_FROM = re.compile(r'FROM "(?P<schema>\w+)"\."(?P<table>\w+)"')


class FakeConnection:
    def __init__(
        self,
        tables: dict[str, list[tuple[str, str]]],
        rows: dict[str, list[dict[str, Any]]],
        *,
        fail_probe: bool = False,
    ) -> None:
        self.tables = tables
        self.rows = rows
        self.fail_probe = fail_probe
        self.queries: list[tuple[str, tuple[Any, ...]]] = []

    @property
    def row_reads(self) -> list[tuple[str, tuple[Any, ...]]]:
        return [entry for entry in self.queries if entry[0].startswith('SELECT "')]

    async def fetch(self, query: str, *args: Any) -> list[dict[str, Any]]:
        self.queries.append((query, args))
        if "information_schema.tables" in query:
            return [{"table_name": name} for name in sorted(self.tables)]
        if "information_schema.columns" in query:
            _schema, table = args
            return [{"column_name": name, "data_type": kind} for name, kind in self.tables.get(table, [])]
        match = _FROM.search(query)
        assert match is not None, query
        (limit,) = args
        return self.rows.get(match.group("table"), [])[:limit]

    async def fetchval(self, query: str, *args: Any) -> Any:
        self.queries.append((query, args))
        if query == "SELECT 1":
            if self.fail_probe:
                raise OSError("connection refused by 10.1.2.3:5432")
            return 1
        if "information_schema.tables" in query:
            _schema, table = args
            return 1 if table in self.tables else None
        raise AssertionError(f"unexpected fetchval: {query}")


class _Acquire:
    def __init__(self, pool: FakePool) -> None:
        self._pool = pool

    async def __aenter__(self) -> FakeConnection:
        self._pool.acquired += 1
        return self._pool.conn

    async def __aexit__(self, *exc_info: object) -> bool:
        self._pool.released += 1
        return False


class FakePool:
    def __init__(self, conn: FakeConnection, *, fail_close: bool = False) -> None:
        self.conn = conn
        self.fail_close = fail_close
        self.acquired = 0
        self.released = 0
        self.closed = False
        self.terminated = False

    def acquire(self, *, timeout: float | None = None) -> _Acquire:
        return _Acquire(self)

    async def close(self) -> None:
        if self.fail_close:
            raise RuntimeError("close failed")
        self.closed = True

    def terminate(self) -> None:
        self.terminated = True


class FakePoolFactory:
    """Async callable with the same keyword interface as ``asyncpg.create_pool``."""

    def __init__(self) -> None:
        self.tables: dict[str, list[tuple[str, str]]] = {"users": list(USERS_COLUMNS)}
        self.rows: dict[str, list[dict[str, Any]]] = {"users": [dict(row) for row in USERS_ROWS]}
        self.fail_probe = False
        self.fail_close = False
        self.calls: list[dict[str, Any]] = []
        self.pools: list[FakePool] = []

    async def __call__(self, **kwargs: Any) -> FakePool:
        self.calls.append(kwargs)
        conn = FakeConnection(self.tables, self.rows, fail_probe=self.fail_probe)
        pool = FakePool(conn, fail_close=self.fail_close)
        self.pools.append(pool)
        return pool


@pytest.fixture
def pool_factory() -> FakePoolFactory:
    return FakePoolFactory()


@pytest.fixture
def fake_pool() -> FakePool:
    conn = FakeConnection(
        {"users": list(USERS_COLUMNS)},
        {"users": [dict(row) for row in USERS_ROWS]},
    )
    return FakePool(conn)
