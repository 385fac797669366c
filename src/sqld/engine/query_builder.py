"""Query builder for table-addressing requests.

This module generates parameterized SQL statements for select, insert, update
and delete operations without any knowledge of the table's columns. Every
client-supplied value is bound as a parameter; table and column names are
quoted through the dialect policy before they are concatenated.

Example:
    builder = QueryBuilder(resolve_dialect("sqlite3"))

    stmt = builder.select(decompose("/products", [("category", "Test"), ("__limit__", "10")]))
    # -> SELECT * FROM products WHERE "category" = ? LIMIT ?
    # -> ["Test", 10]

    stmt = builder.insert("products", {"name": "Widget", "price": 19.99})
    # -> INSERT INTO products ("name", "price") VALUES (?, ?)
    # -> ["Widget", 19.99]
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from .dialect import DialectPolicy
from .exceptions import BadRequest
from .request import DecomposedRequest
from .sql.backend import DatabaseEngine

ROW_ID_COLUMN = "id"


@dataclass(frozen=True)
class Statement:
    """A SQL statement and its bound parameters, in placeholder order."""

    sql: str
    params: list[Any] = field(default_factory=list)


class QueryBuilder:
    """Builds parameterized SQL for one dialect.

    Attributes:
        policy: Dialect policy used for placeholders and quoting
    """

    def __init__(self, policy: DialectPolicy):
        """Initialize query builder.

        Args:
            policy: Dialect policy of the target database
        """
        self.policy = policy

    def select(self, request: DecomposedRequest) -> Statement:
        """Generate SELECT statement.

        ``__order_by__`` terms are emitted verbatim, in request order.
        """
        params: list[Any] = []
        sql = f"SELECT * FROM {self._table(request.table)}"

        where_sql = self._build_where(request, params)
        if where_sql:
            sql += f" WHERE {where_sql}"

        order_sql = self._build_order(request.order_by)
        if order_sql:
            sql += f" ORDER BY {order_sql}"

        if request.limit is not None:
            sql += f" LIMIT {self._bind(params, request.limit)}"
        elif request.offset is not None and self.policy.unbounded_limit:
            sql += f" LIMIT {self.policy.unbounded_limit}"

        if request.offset is not None:
            sql += f" OFFSET {self._bind(params, request.offset)}"

        return Statement(sql, params)

    def insert(self, table: str, payload: dict[str, Any]) -> Statement:
        """Generate INSERT statement listing every payload key as a column."""
        if not payload:
            if self.policy.engine == DatabaseEngine.MYSQL:
                return Statement(f"INSERT INTO {self._table(table)} () VALUES ()")
            return Statement(f"INSERT INTO {self._table(table)} DEFAULT VALUES")

        params: list[Any] = []
        columns = []
        placeholders = []
        for col, value in payload.items():
            columns.append(self._column(col))
            placeholders.append(self._bind(params, self._payload_value(value)))

        col_list = ", ".join(columns)
        val_list = ", ".join(placeholders)
        return Statement(f"INSERT INTO {self._table(table)} ({col_list}) VALUES ({val_list})", params)

    def update(self, request: DecomposedRequest, payload: dict[str, Any]) -> Statement:
        """Generate UPDATE statement.

        Raises:
            BadRequest: If the payload has no columns
        """
        if not payload:
            raise BadRequest("no columns to update")

        params: list[Any] = []
        set_parts = [
            f"{self._column(col)} = {self._bind(params, self._payload_value(value))}"
            for col, value in payload.items()
        ]
        sql = f"UPDATE {self._table(request.table)} SET {', '.join(set_parts)}"

        where_sql = self._build_where(request, params)
        if where_sql:
            sql += f" WHERE {where_sql}"

        sql += self._write_limit(request, params)
        return Statement(sql, params)

    def delete(self, request: DecomposedRequest) -> Statement:
        """Generate DELETE statement."""
        params: list[Any] = []
        sql = f"DELETE FROM {self._table(request.table)}"

        where_sql = self._build_where(request, params)
        if where_sql:
            sql += f" WHERE {where_sql}"

        sql += self._write_limit(request, params)
        return Statement(sql, params)

    def _bind(self, params: list[Any], value: Any) -> str:
        """Append ``value`` to ``params`` and return its placeholder."""
        placeholder = self.policy.placeholder(len(params))
        params.append(value)
        return placeholder

    def _table(self, table: str) -> str:
        return self.policy.escape_literal_text(self.policy.table_name(table))

    def _column(self, name: str) -> str:
        if not name:
            raise BadRequest("invalid column name ''")
        return self.policy.escape_literal_text(self.policy.quote_identifier(name, force=True))

    def _payload_value(self, value: Any) -> Any:
        # Nested JSON is stored as its JSON text
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value

    def _build_where(self, request: DecomposedRequest, params: list[Any]) -> str:
        """Build the ANDed WHERE conditions.

        - Row id: ``"id" = ?``
        - One value: ``"col" = ?``
        - Several values: ``"col" IN (?, ?)``
        """
        conditions = []

        if request.row_id is not None:
            conditions.append(f"{self._column(ROW_ID_COLUMN)} = {self._bind(params, request.row_id)}")

        for col, values in request.filters.items():
            quoted = self._column(col)
            if len(values) == 1:
                conditions.append(f"{quoted} = {self._bind(params, values[0])}")
            else:
                placeholders = ", ".join(self._bind(params, v) for v in values)
                conditions.append(f"{quoted} IN ({placeholders})")

        return " AND ".join(conditions)

    def _build_order(self, order_by: list[str]) -> str:
        # Terms are not validated, see DESIGN.md
        terms = [self.policy.escape_literal_text(t.strip()) for t in order_by if t.strip()]
        return ", ".join(terms)

    def _write_limit(self, request: DecomposedRequest, params: list[Any]) -> str:
        """LIMIT for UPDATE/DELETE, on engines that accept it."""
        if request.limit is None or not self.policy.supports_write_limit:
            return ""
        return f" LIMIT {self._bind(params, request.limit)}"


__all__ = ["QueryBuilder", "ROW_ID_COLUMN", "Statement"]
