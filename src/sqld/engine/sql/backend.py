"""Database backend protocol and data classes.

This module defines the interface every database backend implements, along
with the shared data structures for connection configuration and statement
results. Backends return rows positionally (one tuple per row, in the order of
``QueryResult.columns``); turning them into name/value mappings is the job of
the row materializer.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypeVar, runtime_checkable

from ..exceptions import SqlTimeoutError

T = TypeVar("T")


class DatabaseEngine(Enum):
    """Supported database engines (values are the configured database types)."""

    MYSQL = "mysql"
    POSTGRES = "postgres"
    SQLITE = "sqlite3"


@dataclass
class ConnectionConfig:
    """Database connection configuration.

    Attributes:
        engine: Database engine
        dsn: Full data source name; wins over the discrete fields when set
        path: SQLite database file path (or ":memory:")
        host: Database server host (PostgreSQL/MySQL)
        port: Database server port
        database: Database name
        username: Database username
        password: Database password
        timeout: Statement timeout in seconds
        connect_timeout: Connection establishment timeout in seconds
        pool_size: Connection pool size (remote databases only)
    """

    engine: DatabaseEngine
    dsn: str | None = None
    path: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None
    username: str | None = None
    password: str | None = None
    timeout: float = 30
    connect_timeout: float = 10
    pool_size: int = 5
    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration based on engine."""
        if self.engine == DatabaseEngine.SQLITE:
            if not self.path:
                raise ValueError("SQLite requires 'path' parameter")
        elif not self.dsn and not self.host:
            raise ValueError(f"{self.engine.value} requires 'dsn' or 'host' parameter")

        # Set default ports
        if self.port is None:
            if self.engine == DatabaseEngine.POSTGRES:
                self.port = 5432
            elif self.engine == DatabaseEngine.MYSQL:
                self.port = 3306


@dataclass
class QueryResult:
    """Unified statement result across backends.

    Attributes:
        columns: Column names of the result set, in driver order
        rows: Result rows as positional tuples aligned with ``columns``
        affected_rows: Number of rows affected by INSERT/UPDATE/DELETE
        last_insert_id: Generated row id, when the driver reports one
    """

    columns: list[str] = field(default_factory=list)
    rows: list[tuple[Any, ...]] = field(default_factory=list)
    affected_rows: int = 0
    last_insert_id: int | None = None


# Type alias for statement parameters
Params = tuple[Any, ...] | list[Any] | None


@runtime_checkable
class DatabaseBackend(Protocol):
    """Protocol defining the interface for database backend implementations.

    Backends are stateful (they hold a connection or a pool) and must be safe
    to call from concurrently running request handlers.
    """

    engine: DatabaseEngine

    async def connect(self, config: ConnectionConfig) -> None:
        """Establish database connection or create connection pool.

        Raises:
            SqlConnectionError: If connection fails
        """
        ...

    async def disconnect(self) -> None:
        """Close connection or pool. Safe to call multiple times."""
        ...

    async def query(self, sql: str, params: Params = None) -> QueryResult:
        """Execute a row-returning statement and fetch the whole result.

        Raises:
            SqlQueryError: If the database rejects the statement
            SqlTimeoutError: If the statement exceeds the timeout
        """
        ...

    async def execute(self, sql: str, params: Params = None) -> QueryResult:
        """Execute a write statement.

        Returns:
            QueryResult with affected_rows and last_insert_id

        Raises:
            SqlQueryError: If the database rejects the statement
            SqlTimeoutError: If the statement exceeds the timeout
        """
        ...

    async def ping(self) -> None:
        """Check that the database answers.

        Raises:
            SqlConnectionError: If the database cannot be reached
        """
        ...


class DatabaseBackendBase(ABC):
    """Abstract base class for database backends.

    Applies the statement timeout around the engine-specific coroutines.
    Cancelling the awaiting task (timeout or client disconnect) cancels the
    driver call as well.
    """

    engine: DatabaseEngine
    _timeout: float | None = None

    @abstractmethod
    async def connect(self, config: ConnectionConfig) -> None:
        """Establish database connection."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close database connection."""
        pass

    @abstractmethod
    async def _fetch(self, sql: str, params: Params) -> QueryResult:
        """Run a row-returning statement."""
        pass

    @abstractmethod
    async def _exec(self, sql: str, params: Params) -> QueryResult:
        """Run a write statement."""
        pass

    @abstractmethod
    async def ping(self) -> None:
        """Check database connectivity."""
        pass

    async def query(self, sql: str, params: Params = None) -> QueryResult:
        """Execute a row-returning statement within the timeout."""
        return await self._with_timeout(self._fetch(sql, params))

    async def execute(self, sql: str, params: Params = None) -> QueryResult:
        """Execute a write statement within the timeout."""
        return await self._with_timeout(self._exec(sql, params))

    async def _with_timeout(self, aw: Awaitable[T]) -> T:
        if not self._timeout:
            return await aw
        try:
            return await asyncio.wait_for(aw, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise SqlTimeoutError(f"statement exceeded {self._timeout:g}s timeout") from e
