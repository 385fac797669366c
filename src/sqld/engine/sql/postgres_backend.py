"""PostgreSQL database backend implementation.

This module provides the PostgreSQL backend using asyncpg for native async
operation with connection pooling.

asyncpg binds parameters with the binary protocol and refuses, for example, a
Python ``str`` for an ``int4`` parameter. Filter values decoded from a query
string are always strings, so parameterized statements are prepared first and
string arguments are coerced to the parameter types the server inferred.

Note:
    Requires the 'asyncpg' package: pip install sqld[postgresql]
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from ..exceptions import SqlConnectionError, SqlQueryError
from .backend import ConnectionConfig, DatabaseBackendBase, DatabaseEngine, Params, QueryResult

if TYPE_CHECKING:
    import asyncpg  # type: ignore[import-not-found]

logger = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({"true", "t", "1", "yes", "y", "on"})
_FALSE_STRINGS = frozenset({"false", "f", "0", "no", "n", "off"})

_TEXT_TYPES = frozenset({"text", "varchar", "bpchar", "name", "char", "citext"})


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    raise ValueError(f"invalid boolean {value!r}")


# Parsers from text to the Python type asyncpg expects, keyed by type name
_STR_PARSERS: dict[str, Callable[[str], Any]] = {
    "int2": int,
    "int4": int,
    "int8": int,
    "oid": int,
    "float4": float,
    "float8": float,
    "numeric": Decimal,
    "bool": _parse_bool,
    "date": date.fromisoformat,
    "time": time.fromisoformat,
    "timestamp": datetime.fromisoformat,
    "timestamptz": datetime.fromisoformat,
    "uuid": uuid.UUID,
    "bytea": str.encode,
}


def coerce_args(type_names: Sequence[str], params: Sequence[Any]) -> tuple[Any, ...]:
    """Coerce statement arguments to the server-inferred parameter types.

    Values that cannot be converted are passed through unchanged, so asyncpg
    reports the mismatch as a normal statement error.

    Args:
        type_names: Parameter type names, as reported by a prepared statement
        params: Arguments in placeholder order

    Returns:
        Tuple of arguments ready to bind
    """
    coerced: list[Any] = []
    for type_name, value in zip(type_names, params, strict=False):
        if isinstance(value, str):
            parser = _STR_PARSERS.get(type_name)
            if parser is not None:
                try:
                    value = parser(value)
                except (ValueError, InvalidOperation):
                    pass
        elif type_name in _TEXT_TYPES and value is not None:
            value = str(value).lower() if isinstance(value, bool) else str(value)
        coerced.append(value)
    return tuple(coerced)


def _import_asyncpg() -> Any:
    """Import asyncpg with helpful error message if not installed."""
    try:
        import asyncpg

        return asyncpg
    except ImportError as e:
        raise ImportError(
            "PostgreSQL backend requires 'asyncpg' package. "
            "Install with: pip install sqld[postgresql]"
        ) from e


def parse_affected_rows(status: str | None) -> int:
    """Parse the affected row count from a PostgreSQL command status.

    Result format: "COMMAND [OID] COUNT"
    Examples:
        - "INSERT 0 1" -> 1
        - "UPDATE 5" -> 5
        - "CREATE TABLE" -> 0
    """
    if not status:
        return 0

    parts = status.split()
    if len(parts) >= 2:
        try:
            return int(parts[-1])
        except ValueError:
            pass
    return 0


class PostgresBackend(DatabaseBackendBase):
    """PostgreSQL backend using asyncpg with connection pooling.

    Attributes:
        engine: DatabaseEngine.POSTGRES

    Example:
        backend = PostgresBackend()
        await backend.connect(ConnectionConfig(
            engine=DatabaseEngine.POSTGRES,
            host="localhost",
            database="mydb",
            username="user",
            password="pass",
        ))
        result = await backend.query("SELECT * FROM users WHERE id = $1", ("42",))
        await backend.disconnect()
    """

    engine = DatabaseEngine.POSTGRES

    def __init__(self) -> None:
        """Initialize PostgreSQL backend."""
        self._pool: asyncpg.Pool | None = None
        self._config: ConnectionConfig | None = None

    async def connect(self, config: ConnectionConfig) -> None:
        """Create connection pool.

        Pool settings:
            - min_size: 1
            - max_size: config.pool_size
            - max_inactive_connection_lifetime: 300s

        Raises:
            SqlConnectionError: If connection fails
            ImportError: If asyncpg is not installed
        """
        asyncpg = _import_asyncpg()
        self._config = config
        self._timeout = config.timeout

        connect_kwargs: dict[str, Any]
        if config.dsn:
            connect_kwargs = {"dsn": config.dsn}
        else:
            connect_kwargs = {
                "host": config.host,
                "port": config.port,
                "database": config.database,
                "user": config.username,
                "password": config.password,
            }

        try:
            self._pool = await asyncpg.create_pool(
                **connect_kwargs,
                min_size=1,
                max_size=config.pool_size,
                max_inactive_connection_lifetime=300,
                timeout=config.connect_timeout,
            )
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise SqlConnectionError(f"unable to connect to PostgreSQL: {e}") from e

        logger.debug(f"Connected to PostgreSQL: {config.host}:{config.port}/{config.database}")

    async def disconnect(self) -> None:
        """Close connection pool gracefully."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        logger.debug("Disconnected from PostgreSQL")

    async def _fetch(self, sql: str, params: Params) -> QueryResult:
        pool = self._ensure_connected()
        asyncpg = _import_asyncpg()

        try:
            async with pool.acquire() as conn:
                stmt = await conn.prepare(sql)
                args = self._bind_args(stmt, params)
                records = await stmt.fetch(*args)
                columns = [attr.name for attr in stmt.get_attributes()]
        except Exception as e:
            translated = self._translate(asyncpg, e)
            if translated is e:
                raise
            raise translated from e

        return QueryResult(columns=columns, rows=[tuple(record) for record in records])

    async def _exec(self, sql: str, params: Params) -> QueryResult:
        pool = self._ensure_connected()
        asyncpg = _import_asyncpg()

        try:
            async with pool.acquire() as conn:
                if params:
                    stmt = await conn.prepare(sql)
                    await stmt.fetch(*self._bind_args(stmt, params))
                    status = stmt.get_statusmsg()
                else:
                    # Simple query protocol: no prepare round trip, scripts allowed
                    status = await conn.execute(sql)
        except Exception as e:
            translated = self._translate(asyncpg, e)
            if translated is e:
                raise
            raise translated from e

        return QueryResult(affected_rows=parse_affected_rows(status), last_insert_id=None)

    async def ping(self) -> None:
        """Run a trivial statement on a pooled connection."""
        if self._pool is None:
            raise SqlConnectionError("not connected to database")
        try:
            await self._pool.fetchval("SELECT 1")
        except Exception as e:
            raise SqlConnectionError(f"PostgreSQL ping failed: {e}") from e

    def _ensure_connected(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Not connected to database. Call connect() first.")
        return self._pool

    def _bind_args(self, stmt: Any, params: Params) -> tuple[Any, ...]:
        if not params:
            return ()
        type_names = [t.name for t in stmt.get_parameters()]
        return coerce_args(type_names, params)

    @staticmethod
    def _translate(asyncpg: Any, error: Exception) -> Exception:
        """Map an asyncpg failure onto the backend error family."""
        if isinstance(error, asyncpg.PostgresError):
            return SqlQueryError(str(error))
        # Invalid argument values surface as InterfaceError + ValueError
        if isinstance(error, asyncpg.InterfaceError) and isinstance(error, ValueError):
            return SqlQueryError(str(error))
        if isinstance(error, (OSError, asyncpg.InterfaceError)):
            return SqlConnectionError(str(error))
        return error
