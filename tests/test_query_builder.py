"""Tests for SQL generation from decomposed requests."""

from __future__ import annotations

import pytest

from sqld.engine import BadRequest, DecomposedRequest, QueryBuilder, decompose, resolve_dialect


@pytest.fixture
def sqlite() -> QueryBuilder:
    return QueryBuilder(resolve_dialect("sqlite3"))


@pytest.fixture
def postgres() -> QueryBuilder:
    return QueryBuilder(resolve_dialect("postgres"))


@pytest.fixture
def mysql() -> QueryBuilder:
    return QueryBuilder(resolve_dialect("mysql"))


# ============================================================================
# SELECT Tests
# ============================================================================


class TestSelect:
    """Tests for SELECT generation."""

    def test_select_all(self, sqlite: QueryBuilder) -> None:
        stmt = sqlite.select(DecomposedRequest(table="products"))
        assert stmt.sql == "SELECT * FROM products"
        assert stmt.params == []

    def test_row_id_matches_id_filter(self, sqlite: QueryBuilder) -> None:
        """/T/5 and /T?id=5 produce the same statement."""
        by_path = sqlite.select(decompose("/products/5", []))
        by_filter = sqlite.select(decompose("/products", [("id", "5")]))
        assert by_path == by_filter
        assert by_path.sql == 'SELECT * FROM products WHERE "id" = ?'
        assert by_path.params == ["5"]

    def test_filters_equality_and_in(self, sqlite: QueryBuilder) -> None:
        stmt = sqlite.select(
            decompose("/products", [("category", "Test"), ("name", "A"), ("name", "B")])
        )
        assert stmt.sql == 'SELECT * FROM products WHERE "category" = ? AND "name" IN (?, ?)'
        assert stmt.params == ["Test", "A", "B"]

    def test_row_id_comes_first(self, postgres: QueryBuilder) -> None:
        stmt = postgres.select(decompose("/products/3", [("category", "Test")]))
        assert stmt.sql == 'SELECT * FROM products WHERE "id" = $1 AND "category" = $2'
        assert stmt.params == ["3", "Test"]

    def test_order_limit_offset(self, postgres: QueryBuilder) -> None:
        stmt = postgres.select(
            decompose(
                "/products",
                [
                    ("category", "Test"),
                    ("__order_by__", "price DESC"),
                    ("__order_by__", "name"),
                    ("__limit__", "10"),
                    ("__offset__", "20"),
                ],
            )
        )
        assert stmt.sql == (
            'SELECT * FROM products WHERE "category" = $1 '
            "ORDER BY price DESC, name LIMIT $2 OFFSET $3"
        )
        assert stmt.params == ["Test", 10, 20]

    def test_offset_without_limit_sqlite(self, sqlite: QueryBuilder) -> None:
        stmt = sqlite.select(decompose("/products", [("__offset__", "5")]))
        assert stmt.sql == "SELECT * FROM products LIMIT -1 OFFSET ?"
        assert stmt.params == [5]

    def test_offset_without_limit_postgres(self, postgres: QueryBuilder) -> None:
        stmt = postgres.select(decompose("/products", [("__offset__", "5")]))
        assert stmt.sql == "SELECT * FROM products OFFSET $1"

    def test_mysql_quoting_and_placeholders(self, mysql: QueryBuilder) -> None:
        stmt = mysql.select(decompose("/products", [("category", "Test"), ("__limit__", "1")]))
        assert stmt.sql == "SELECT * FROM products WHERE `category` = %s LIMIT %s"
        assert stmt.params == ["Test", 1]

    def test_mysql_percent_in_identifier_escaped(self, mysql: QueryBuilder) -> None:
        stmt = mysql.select(decompose("/products", [("discount%", "5")]))
        assert stmt.sql == "SELECT * FROM products WHERE `discount%%` = %s"

    def test_schema_qualified_table(self) -> None:
        builder = QueryBuilder(resolve_dialect("postgres", schema_name="myschema"))
        stmt = builder.select(DecomposedRequest(table="Actions"))
        assert stmt.sql == 'SELECT * FROM myschema."Actions"'

    def test_column_name_is_quoted(self, sqlite: QueryBuilder) -> None:
        stmt = sqlite.select(decompose("/products", [('x" OR 1=1 --', "v")]))
        assert stmt.sql == 'SELECT * FROM products WHERE "x"" OR 1=1 --" = ?'

    def test_empty_column_name(self, sqlite: QueryBuilder) -> None:
        with pytest.raises(BadRequest, match="invalid column name"):
            sqlite.select(decompose("/products", [("", "v")]))


# ============================================================================
# INSERT Tests
# ============================================================================


class TestInsert:
    """Tests for INSERT generation."""

    def test_insert(self, sqlite: QueryBuilder) -> None:
        stmt = sqlite.insert("products", {"name": "Widget", "price": 19.99})
        assert stmt.sql == 'INSERT INTO products ("name", "price") VALUES (?, ?)'
        assert stmt.params == ["Widget", 19.99]

    def test_insert_postgres(self, postgres: QueryBuilder) -> None:
        stmt = postgres.insert("products", {"name": "Widget", "price": 19.99})
        assert stmt.sql == 'INSERT INTO products ("name", "price") VALUES ($1, $2)'

    def test_insert_nested_value_as_json(self, sqlite: QueryBuilder) -> None:
        stmt = sqlite.insert("notes", {"body": {"tags": ["a", "b"]}})
        assert stmt.params == ['{"tags": ["a", "b"]}']

    def test_insert_empty_payload(self, sqlite: QueryBuilder, mysql: QueryBuilder) -> None:
        assert sqlite.insert("notes", {}).sql == "INSERT INTO notes DEFAULT VALUES"
        assert mysql.insert("notes", {}).sql == "INSERT INTO notes () VALUES ()"


# ============================================================================
# UPDATE / DELETE Tests
# ============================================================================


class TestUpdateDelete:
    """Tests for UPDATE and DELETE generation."""

    def test_update_by_row_id(self, sqlite: QueryBuilder) -> None:
        stmt = sqlite.update(decompose("/products/4", []), {"price": 9.5})
        assert stmt.sql == 'UPDATE products SET "price" = ? WHERE "id" = ?'
        assert stmt.params == [9.5, "4"]

    def test_update_without_columns(self, sqlite: QueryBuilder) -> None:
        with pytest.raises(BadRequest, match="no columns to update"):
            sqlite.update(decompose("/products/4", []), {})

    def test_write_limit_only_on_mysql(self, sqlite: QueryBuilder, mysql: QueryBuilder) -> None:
        request = decompose("/products", [("category", "Test"), ("__limit__", "2")])
        assert sqlite.delete(request).sql == 'DELETE FROM products WHERE "category" = ?'
        stmt = mysql.delete(request)
        assert stmt.sql == "DELETE FROM products WHERE `category` = %s LIMIT %s"
        assert stmt.params == ["Test", 2]

    def test_delete_by_row_id(self, postgres: QueryBuilder) -> None:
        stmt = postgres.delete(decompose("/products/999", []))
        assert stmt.sql == 'DELETE FROM products WHERE "id" = $1'
        assert stmt.params == ["999"]

    def test_delete_without_conditions(self, sqlite: QueryBuilder) -> None:
        assert sqlite.delete(DecomposedRequest(table="notes")).sql == "DELETE FROM notes"
