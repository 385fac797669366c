"""Database backends for sqld.

This module provides a unified interface for executing SQL against multiple
database backends: SQLite, PostgreSQL, and MySQL/MariaDB.

Usage:
    from sqld.engine.sql import ConnectionConfig, DatabaseEngine, create_backend

    # SQLite (always available)
    backend = create_backend(DatabaseEngine.SQLITE)
    await backend.connect(ConnectionConfig(engine=DatabaseEngine.SQLITE, path=":memory:"))

    # PostgreSQL (requires asyncpg)
    backend = create_backend(DatabaseEngine.POSTGRES)
    await backend.connect(ConnectionConfig(
        engine=DatabaseEngine.POSTGRES,
        host="localhost",
        database="mydb",
        username="user",
        password="pass",
    ))
"""

from .backend import (
    ConnectionConfig,
    DatabaseBackend,
    DatabaseBackendBase,
    DatabaseEngine,
    Params,
    QueryResult,
)
from .mariadb_backend import MariaDBBackend
from .postgres_backend import PostgresBackend
from .sqlite_backend import SqliteBackend

_BACKENDS: dict[DatabaseEngine, type[DatabaseBackendBase]] = {
    DatabaseEngine.SQLITE: SqliteBackend,
    DatabaseEngine.POSTGRES: PostgresBackend,
    DatabaseEngine.MYSQL: MariaDBBackend,
}


def create_backend(engine: DatabaseEngine) -> DatabaseBackendBase:
    """Create an unconnected backend for ``engine``."""
    return _BACKENDS[engine]()


__all__ = [
    # Core types
    "ConnectionConfig",
    "DatabaseBackend",
    "DatabaseBackendBase",
    "DatabaseEngine",
    "Params",
    "QueryResult",
    # Backends
    "SqliteBackend",
    "PostgresBackend",
    "MariaDBBackend",
    "create_backend",
]
