"""Tests for raw SQL classification and execution."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from sqld.engine import (
    BadRequest,
    ExecResult,
    QueryType,
    RawQueryExecutor,
    SqlQueryError,
    detect_query_type,
)
from sqld.engine.sql import ConnectionConfig, DatabaseEngine, SqliteBackend


@pytest.mark.parametrize(
    ("sql", "expected"),
    [
        ("SELECT 1", QueryType.READ),
        ("  select * from t", QueryType.READ),
        ("show tables", QueryType.READ),
        ("DESCRIBE products", QueryType.READ),
        ("DESC products", QueryType.READ),
        ("EXPLAIN SELECT 1", QueryType.READ),
        ("PRAGMA table_info(products)", QueryType.READ),
        ("insert into t values (1)", QueryType.WRITE),
        ("UPDATE t SET a = 1", QueryType.WRITE),
        ("DELETE FROM t", QueryType.WRITE),
        ("CREATE TABLE t (a INT)", QueryType.WRITE),
        ("drop table t", QueryType.WRITE),
        ("ALTER TABLE t ADD b INT", QueryType.WRITE),
        ("\n\tSELECT\n1", QueryType.READ),
        ("WITH x AS (SELECT 1) SELECT * FROM x", QueryType.UNKNOWN),
        ("TRUNCATE t", QueryType.UNKNOWN),
        ("", QueryType.UNKNOWN),
        ("   ", QueryType.UNKNOWN),
    ],
)
def test_detect_query_type(sql: str, expected: QueryType) -> None:
    assert detect_query_type(sql) == expected


# ============================================================================
# Execution Tests
# ============================================================================


@pytest.fixture
async def backend(tmp_path: Path) -> AsyncGenerator[SqliteBackend, None]:
    backend = SqliteBackend()
    await backend.connect(
        ConnectionConfig(engine=DatabaseEngine.SQLITE, path=str(tmp_path / "raw.db"))
    )
    yield backend
    await backend.disconnect()


class TestRawQueryExecutor:
    """Raw statements against a real SQLite database."""

    async def test_write_then_read(self, backend: SqliteBackend) -> None:
        executor = RawQueryExecutor(backend)

        created = await executor.run("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)")
        assert created == ExecResult(rows_affected=0)

        inserted = await executor.run("INSERT INTO t (name) VALUES ('a'), ('b')")
        assert inserted == ExecResult(rows_affected=2)

        rows = await executor.run("SELECT id, name FROM t ORDER BY id")
        assert rows == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]

    async def test_read_without_rows(self, backend: SqliteBackend) -> None:
        executor = RawQueryExecutor(backend)
        await executor.run("CREATE TABLE t (id INTEGER)")
        assert await executor.run("SELECT * FROM t") == []

    @pytest.mark.parametrize("sql", ["", "   \n"])
    async def test_empty_query(self, backend: SqliteBackend, sql: str) -> None:
        with pytest.raises(BadRequest, match="empty query"):
            await RawQueryExecutor(backend).run(sql)

    async def test_unknown_query_type(self, backend: SqliteBackend) -> None:
        with pytest.raises(BadRequest, match="unknown query type"):
            await RawQueryExecutor(backend).run("VACUUM")

    async def test_database_error_propagates(self, backend: SqliteBackend) -> None:
        with pytest.raises(SqlQueryError, match="no such table"):
            await RawQueryExecutor(backend).run("SELECT * FROM missing")
