"""Raw SQL execution.

Raw queries bypass the query builder: the client sends a complete SQL
statement, which is classified by its first keyword and then executed either
through the row materialization path (reads) or as a write returning the
affected row count.

Classification is purely lexical. Nothing here parses or validates the SQL;
malformed or multi-statement input is rejected only if the database rejects it.
"""

from __future__ import annotations

import json
import logging
from enum import Enum

from starlette.datastructures import UploadFile
from starlette.requests import Request

from .exceptions import BadRequest
from .materializer import materialize
from .models import ExecResult, Row
from .sql.backend import DatabaseBackend

logger = logging.getLogger(__name__)

READ_KEYWORDS = frozenset({"SELECT", "SHOW", "DESCRIBE", "EXPLAIN", "DESC", "PRAGMA"})
WRITE_KEYWORDS = frozenset({"INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "ALTER"})

SQL_FIELD = "sql"


class QueryType(Enum):
    """Kind of raw statement, decided by its leading keyword."""

    READ = "read"
    WRITE = "write"
    UNKNOWN = "unknown"


def detect_query_type(sql: str) -> QueryType:
    """Classify a SQL statement by its first whitespace-delimited token.

    Example:
        >>> detect_query_type("  select 1")
        <QueryType.READ: 'read'>
        >>> detect_query_type("DROP TABLE x")
        <QueryType.WRITE: 'write'>
    """
    tokens = sql.split(None, 1)
    if not tokens:
        return QueryType.UNKNOWN
    action = tokens[0].upper()
    if action in READ_KEYWORDS:
        return QueryType.READ
    if action in WRITE_KEYWORDS:
        return QueryType.WRITE
    return QueryType.UNKNOWN


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


async def extract_sql(request: Request) -> str:
    """Read the SQL statement from a raw query request.

    Supported bodies:
        - application/json (default): ``{"sql": "..."}``
        - text/plain: the statement itself
        - multipart/form-data or x-www-form-urlencoded: field ``sql`` or an
          uploaded file named ``sql``

    Returns:
        The statement with surrounding whitespace removed (may be empty)

    Raises:
        BadRequest: If the body cannot be decoded
    """
    media_type = _media_type(request.headers.get("content-type", ""))

    if media_type == "text/plain":
        body = await request.body()
        return body.decode("utf-8", errors="replace").strip()

    if media_type in ("multipart/form-data", "application/x-www-form-urlencoded"):
        async with request.form() as form:
            value = form.get(SQL_FIELD)
            if isinstance(value, UploadFile):
                content = await value.read()
                return content.decode("utf-8", errors="replace").strip()
            return (value or "").strip()

    body = await request.body()
    if not body.strip():
        return ""
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise BadRequest(str(e)) from e
    if not isinstance(data, dict):
        raise BadRequest("invalid raw query request")
    sql = data.get(SQL_FIELD) or ""
    if not isinstance(sql, str):
        raise BadRequest("invalid raw query request")
    return sql.strip()


class RawQueryExecutor:
    """Executes classified raw SQL against a backend.

    Attributes:
        backend: Connected database backend
    """

    def __init__(self, backend: DatabaseBackend):
        self.backend = backend

    async def run(self, sql: str) -> list[Row] | ExecResult:
        """Execute a raw statement.

        Args:
            sql: Statement text

        Returns:
            Materialized rows for reads, ExecResult for writes

        Raises:
            BadRequest: If the statement is empty or of unknown type
            SqlError: If the database rejects the statement
        """
        sql = sql.strip()
        if not sql:
            raise BadRequest("empty query")

        query_type = detect_query_type(sql)
        logger.debug(f"Raw {query_type.value} query: {sql}")

        if query_type == QueryType.READ:
            return materialize(await self.backend.query(sql))
        if query_type == QueryType.WRITE:
            result = await self.backend.execute(sql)
            return ExecResult(rows_affected=result.affected_rows)

        raise BadRequest("unknown query type")


__all__ = [
    "QueryType",
    "RawQueryExecutor",
    "detect_query_type",
    "extract_sql",
]
