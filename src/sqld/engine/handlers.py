"""Per-verb query handlers.

``QueryHandler`` ties the core together for one configured database: it builds
statements for decomposed requests, executes them on the backend, materializes
reads and shapes writes. It knows nothing about HTTP beyond the raw request
body it is handed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from .dialect import DialectPolicy
from .exceptions import BadRequest
from .materializer import materialize
from .models import ExecResult, Row
from .query_builder import ROW_ID_COLUMN, QueryBuilder, Statement
from .raw import RawQueryExecutor
from .request import DecomposedRequest
from .sql.backend import DatabaseBackend, QueryResult

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"


def parse_write_payload(body: bytes) -> dict[str, Any]:
    """Decode a write body into a column -> value mapping.

    Raises:
        BadRequest: If the body is not valid JSON or not a JSON object
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BadRequest(str(e)) from e
    if not isinstance(data, dict):
        raise BadRequest("invalid request")
    return data


def is_json_content_type(content_type: str | None) -> bool:
    """Check for ``application/json``, ignoring parameters such as charset."""
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower() == JSON_MEDIA_TYPE


class QueryHandler:
    """Executes table-addressing and raw requests for one database.

    Attributes:
        policy: Dialect policy of the database
        backend: Connected database backend
        builder: Query builder for the dialect
        raw_executor: Executor for raw SQL
    """

    def __init__(
        self,
        policy: DialectPolicy,
        backend: DatabaseBackend,
        on_write: Callable[[], None] | None = None,
    ):
        """Initialize handler.

        Args:
            policy: Dialect policy of the database
            backend: Connected database backend
            on_write: Called after every successful write
        """
        self.policy = policy
        self.backend = backend
        self.builder = QueryBuilder(policy)
        self.raw_executor = RawQueryExecutor(backend)
        self._on_write = on_write

    async def read(self, request: DecomposedRequest) -> list[Row]:
        """Handle GET: select matching rows."""
        stmt = self.builder.select(request)
        return await self._fetch(stmt)

    async def create(self, table: str, content_type: str | None, body: bytes) -> Row | ExecResult:
        """Handle POST: insert one row from a JSON object body.

        Returns the payload augmented with the generated id on engines that
        report one reliably; ``ExecResult`` everywhere else.

        Raises:
            BadRequest: For a non-JSON content type or a non-object body
        """
        if not is_json_content_type(content_type):
            raise BadRequest(
                f"unsupported content type {content_type or ''!r}, expected {JSON_MEDIA_TYPE}"
            )
        payload = parse_write_payload(body)

        stmt = self.builder.insert(table, payload)
        result = await self._execute(stmt)

        if self.policy.reports_last_insert_id and result.last_insert_id:
            if ROW_ID_COLUMN in payload:
                return dict(payload)
            return {**payload, ROW_ID_COLUMN: result.last_insert_id}
        return ExecResult(rows_affected=result.affected_rows)

    async def update(self, request: DecomposedRequest, body: bytes) -> ExecResult:
        """Handle PUT: update matching rows from a JSON object body."""
        payload = parse_write_payload(body)
        stmt = self.builder.update(request, payload)
        result = await self._execute(stmt)
        return ExecResult(rows_affected=result.affected_rows)

    async def delete(self, request: DecomposedRequest) -> ExecResult:
        """Handle DELETE: delete matching rows."""
        stmt = self.builder.delete(request)
        result = await self._execute(stmt)
        return ExecResult(rows_affected=result.affected_rows)

    async def raw(self, sql: str) -> list[Row] | ExecResult:
        """Handle a raw SQL request."""
        outcome = await self.raw_executor.run(sql)
        if isinstance(outcome, ExecResult):
            self._written()
        return outcome

    async def _fetch(self, stmt: Statement) -> list[Row]:
        logger.debug(f"Query: {stmt.sql} params={stmt.params}")
        return materialize(await self.backend.query(stmt.sql, stmt.params))

    async def _execute(self, stmt: Statement) -> QueryResult:
        logger.debug(f"Exec: {stmt.sql} params={stmt.params}")
        result = await self.backend.execute(stmt.sql, stmt.params)
        self._written()
        return result

    def _written(self) -> None:
        if self._on_write is not None:
            self._on_write()


__all__ = ["QueryHandler", "is_json_content_type", "parse_write_payload"]
