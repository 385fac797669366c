"""SQLite database backend implementation.

This module provides the SQLite backend using the stdlib sqlite3 module driven
from a dedicated single-thread executor. The single worker serializes every
access to the shared connection, which is what makes one connection safe to
use from concurrently running request handlers.

Features:
    - Autocommit connection (no implicit transactions)
    - Busy timeout and foreign key enforcement
    - Parent directory creation for file databases, URI paths ("file::memory:")
    - Statement interruption when the awaiting task is cancelled
    - Online backup to / restore from a database file (in-memory deployments)
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, TypeVar

from ..exceptions import SqlConnectionError, SqlError, SqlQueryError
from .backend import ConnectionConfig, DatabaseBackendBase, DatabaseEngine, Params, QueryResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqliteBackend(DatabaseBackendBase):
    """SQLite backend using stdlib sqlite3 with a serial executor.

    Attributes:
        engine: DatabaseEngine.SQLITE
        DEFAULT_PRAGMAS: PRAGMA settings applied on connection

    Example:
        backend = SqliteBackend()
        await backend.connect(ConnectionConfig(engine=DatabaseEngine.SQLITE, path=":memory:"))
        result = await backend.query("SELECT * FROM users WHERE id = ?", ("42",))
        await backend.disconnect()
    """

    engine = DatabaseEngine.SQLITE

    DEFAULT_PRAGMAS: dict[str, str | int] = {
        "busy_timeout": 30000,
        "foreign_keys": "ON",
    }

    def __init__(self) -> None:
        """Initialize SQLite backend."""
        self._conn: sqlite3.Connection | None = None
        self._config: ConnectionConfig | None = None
        self._executor: ThreadPoolExecutor | None = None

    async def connect(self, config: ConnectionConfig) -> None:
        """Connect to the SQLite database.

        Creates parent directories of file databases and applies PRAGMA
        settings from ``config.options["sqlite_pragmas"]`` or the defaults.

        Raises:
            SqlConnectionError: If the database cannot be opened
        """
        self._config = config
        self._timeout = config.timeout
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sqld-sqlite")

        def _connect() -> sqlite3.Connection:
            path = config.path
            if path is None:
                raise ValueError("SQLite requires 'path' parameter")

            uri = path.startswith("file:")
            if not uri and path != ":memory:":
                Path(path).parent.mkdir(parents=True, exist_ok=True)

            conn = sqlite3.connect(path, uri=uri, check_same_thread=False, isolation_level=None)

            pragmas = {**self.DEFAULT_PRAGMAS}
            if config.options.get("sqlite_pragmas"):
                pragmas.update(config.options["sqlite_pragmas"])

            for pragma, value in pragmas.items():
                try:
                    conn.execute(f"PRAGMA {pragma}={value}")
                except sqlite3.Error as e:
                    logger.warning(f"Failed to set PRAGMA {pragma}={value}: {e}")

            logger.debug(f"Connected to SQLite database: {path}")
            return conn

        try:
            self._conn = await self._run(_connect)
        except sqlite3.Error as e:
            raise SqlConnectionError(f"unable to open SQLite database: {e}") from e

    async def disconnect(self) -> None:
        """Close the SQLite connection. Safe to call multiple times."""
        if self._conn is None:
            return

        conn = self._conn
        await self._run(conn.close)
        self._conn = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        logger.debug("Disconnected from SQLite database")

    async def _fetch(self, sql: str, params: Params) -> QueryResult:
        conn = self._ensure_connected()

        def _query() -> QueryResult:
            try:
                cursor = conn.execute(sql, self._normalize_params(params))
                rows = cursor.fetchall()
            except (sqlite3.Error, OverflowError) as e:
                raise SqlQueryError(str(e)) from e
            columns = [desc[0] for desc in cursor.description] if cursor.description else []
            return QueryResult(columns=columns, rows=rows)

        return await self._run(_query)

    async def _exec(self, sql: str, params: Params) -> QueryResult:
        conn = self._ensure_connected()

        def _execute() -> QueryResult:
            try:
                cursor = conn.execute(sql, self._normalize_params(params))
            except (sqlite3.Error, OverflowError) as e:
                raise SqlQueryError(str(e)) from e
            # rowcount is -1 for DDL statements
            return QueryResult(
                affected_rows=max(cursor.rowcount, 0),
                last_insert_id=cursor.lastrowid,
            )

        return await self._run(_execute)

    async def ping(self) -> None:
        """Run a trivial statement against the connection."""
        if self._conn is None:
            raise SqlConnectionError("not connected to database")
        conn = self._conn

        def _ping() -> None:
            try:
                conn.execute("SELECT 1").fetchone()
            except sqlite3.Error as e:
                raise SqlConnectionError(str(e)) from e

        await self._run(_ping)

    async def backup_to(self, path: str) -> None:
        """Copy the whole database into the file at ``path``.

        Raises:
            SqlError: If the backup fails
        """
        conn = self._ensure_connected()

        def _backup() -> None:
            target = sqlite3.connect(path)
            try:
                conn.backup(target)
            except sqlite3.Error as e:
                raise SqlError(f"backup to {path} failed: {e}") from e
            finally:
                target.close()

        await self._run(_backup)
        logger.debug(f"Backed up SQLite database to {path}")

    async def restore_from(self, path: str) -> None:
        """Replace the database contents with the file at ``path``.

        Raises:
            SqlError: If the restore fails
        """
        conn = self._ensure_connected()

        def _restore() -> None:
            source = sqlite3.connect(path)
            try:
                source.backup(conn)
            except sqlite3.Error as e:
                raise SqlError(f"restore from {path} failed: {e}") from e
            finally:
                source.close()

        await self._run(_restore)
        logger.debug(f"Restored SQLite database from {path}")

    async def _run(self, fn: Callable[[], T]) -> T:
        """Run ``fn`` on the backend's worker thread.

        If the awaiting task is cancelled while ``fn`` is running, the running
        statement is interrupted so the worker is freed promptly.
        """
        if self._executor is None:
            raise RuntimeError("Not connected to database. Call connect() first.")

        running = [False]

        def _call() -> T:
            running[0] = True
            try:
                return fn()
            finally:
                running[0] = False

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, _call)
        except asyncio.CancelledError:
            if running[0] and self._conn is not None:
                self._conn.interrupt()
            raise

    def _ensure_connected(self) -> sqlite3.Connection:
        """Return the open connection.

        Raises:
            RuntimeError: If not connected
        """
        if self._conn is None:
            raise RuntimeError("Not connected to database. Call connect() first.")
        return self._conn

    def _normalize_params(self, params: Params) -> tuple[Any, ...]:
        if params is None:
            return ()
        return tuple(params)
