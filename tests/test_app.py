"""End-to-end tests of the HTTP surface against a SQLite database."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

from starlette.testclient import TestClient

from sqld.config import SqldConfig
from sqld.server import CLIENT_CLOSED_REQUEST, create_app

WIDGET = {"name": "Widget", "category": "Test", "price": 19.99}


def seed_products(client: TestClient, count: int) -> None:
    for i in range(count):
        response = client.post(
            "/products", json={"name": f"item{i}", "category": "bulk", "price": i}
        )
        assert response.status_code == 200


# ============================================================================
# Table Routes
# ============================================================================


class TestTableRoutes:
    """CRUD over /{table}[/{id}]."""

    def test_create_then_filter(self, client: TestClient) -> None:
        created = client.post("/products", json=WIDGET)
        assert created.status_code == 200
        assert created.json() == {**WIDGET, "id": 1}

        response = client.get("/products", params={"category": "Test"})
        assert response.status_code == 200
        assert response.json() == [{"id": 1, **WIDGET}]

    def test_row_id_equals_id_filter(self, client: TestClient) -> None:
        seed_products(client, 3)
        by_path = client.get("/products/2")
        by_filter = client.get("/products?id=2")
        assert by_path.json() == by_filter.json()
        assert [row["name"] for row in by_path.json()] == ["item1"]

    def test_multiple_filter_values(self, client: TestClient) -> None:
        seed_products(client, 4)
        response = client.get("/products?name=item0&name=item3&__order_by__=id")
        assert [row["id"] for row in response.json()] == [1, 4]

    def test_no_match_is_empty_array(self, client: TestClient) -> None:
        response = client.get("/products?category=none")
        assert response.status_code == 200
        assert response.json() == []

    def test_limit_bounds_result(self, client: TestClient) -> None:
        seed_products(client, 5)
        assert len(client.get("/products?__limit__=2").json()) == 2
        assert len(client.get("/products?__limit__=abc").json()) == 5

    def test_order_and_offset(self, client: TestClient) -> None:
        seed_products(client, 5)
        response = client.get("/products?__order_by__=price DESC&__limit__=2&__offset__=1")
        assert [row["price"] for row in response.json()] == [3, 2]

        response = client.get("/products?__offset__=3&__order_by__=id")
        assert [row["id"] for row in response.json()] == [4, 5]

    def test_update(self, client: TestClient) -> None:
        client.post("/products", json=WIDGET)
        response = client.put("/products/1", json={"price": 5})
        assert response.status_code == 200
        assert response.json() == {"rows_affected": 1}
        assert client.get("/products/1").json()[0]["price"] == 5

    def test_update_without_columns(self, client: TestClient) -> None:
        client.post("/products", json=WIDGET)
        response = client.put("/products/1", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "no columns to update"}

    def test_delete_missing_row(self, client: TestClient) -> None:
        response = client.delete("/products/999")
        assert response.status_code == 200
        assert response.json() == {"rows_affected": 0}

    def test_delete(self, client: TestClient) -> None:
        seed_products(client, 2)
        assert client.delete("/products/1").json() == {"rows_affected": 1}
        assert [row["id"] for row in client.get("/products").json()] == [2]

    def test_nested_value_stored_as_json_text(self, client: TestClient) -> None:
        client.post("/notes", json={"title": "t", "body": {"tags": ["a"]}})
        assert client.get("/notes/1").json()[0]["body"] == '{"tags": ["a"]}'

    def test_create_requires_json_content_type(self, client: TestClient) -> None:
        response = client.post(
            "/products", content=b'{"name": "x"}', headers={"content-type": "text/plain"}
        )
        assert response.status_code == 400
        assert "application/json" in response.json()["error"]

    def test_create_invalid_json(self, client: TestClient) -> None:
        response = client.post(
            "/products", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400
        assert "error" in response.json()

    def test_create_non_object_body(self, client: TestClient) -> None:
        response = client.post("/products", json=[1, 2])
        assert response.status_code == 400
        assert response.json() == {"error": "invalid request"}

    def test_database_error_is_bad_request(self, client: TestClient) -> None:
        response = client.get("/missing_table")
        assert response.status_code == 400
        assert "no such table" in response.json()["error"]

    def test_integer_out_of_range_is_bad_request(self, client: TestClient) -> None:
        response = client.post(
            "/products", json={"name": "x", "price": 99999999999999999999999}
        )
        assert response.status_code == 400
        assert "error" in response.json()

    def test_non_finite_number_is_null(self, client: TestClient) -> None:
        created = client.post(
            "/products",
            content=b'{"name": "x", "price": 1e999}',
            headers={"content-type": "application/json"},
        )
        assert created.status_code == 200
        assert created.json()["price"] is None

        response = client.get("/products/1")
        assert response.status_code == 200
        assert response.json() == [{"id": 1, "name": "x", "category": None, "price": None}]

    def test_unknown_column_is_bad_request(self, client: TestClient) -> None:
        response = client.post("/products", json={"colour": "red"})
        assert response.status_code == 400

    def test_other_verbs_not_allowed(self, client: TestClient) -> None:
        response = client.patch("/products/1", json={"price": 1})
        assert response.status_code == 405
        assert response.json() == {"error": "MethodNotAllowed"}


# ============================================================================
# Output Formats
# ============================================================================


class TestOutputFormats:
    """Accept header negotiation."""

    def test_csv_quotes_delimiter(self, client: TestClient) -> None:
        client.post("/products", json={"name": "Widget, large", "category": "Test", "price": 1})
        response = client.get("/products", headers={"accept": "text/csv"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.text == 'id,name,category,price\n1,"Widget, large",Test,1.0\n'

    def test_tsv(self, client: TestClient) -> None:
        client.post("/products", json={"name": "a,b", "category": None, "price": 2.5})
        response = client.get("/products", headers={"accept": "text/tsv"})
        assert response.text == "id\tname\tcategory\tprice\n1\ta,b\tnull\t2.5\n"

    def test_csv_write_result(self, client: TestClient) -> None:
        response = client.delete("/products/1", headers={"accept": "text/csv"})
        assert response.text == "rows_affected\n0\n"

    def test_csv_error(self, client: TestClient) -> None:
        response = client.patch("/products", headers={"accept": "text/csv"})
        assert response.status_code == 405
        assert response.text == "error\nMethodNotAllowed\n"

    def test_csv_nested_value_is_json(self, client: TestClient) -> None:
        response = client.post(
            "/notes", json={"title": "t", "body": {"k": 1}}, headers={"accept": "text/csv"}
        )
        assert response.status_code == 200
        assert response.text == 'title,body,id\nt,"{""k"": 1}",1\n'


# ============================================================================
# Raw SQL
# ============================================================================


class TestRawQueries:
    """Raw SQL posted to the base URL."""

    def test_json_body(self, client: TestClient) -> None:
        client.post("/products", json=WIDGET)
        response = client.post("/", json={"sql": "SELECT name, price FROM products"})
        assert response.status_code == 200
        assert response.json() == [{"name": "Widget", "price": 19.99}]

    def test_write(self, client: TestClient) -> None:
        seed_products(client, 3)
        response = client.post("/", json={"sql": "DELETE FROM products WHERE id > 1"})
        assert response.json() == {"rows_affected": 2}

    def test_text_body(self, client: TestClient) -> None:
        response = client.post(
            "/", content=b"SELECT 1 AS one", headers={"content-type": "text/plain"}
        )
        assert response.json() == [{"one": 1}]

    def test_form_body(self, client: TestClient) -> None:
        response = client.post("/", data={"sql": "SELECT 2 AS two"})
        assert response.json() == [{"two": 2}]

    def test_multipart_file(self, client: TestClient) -> None:
        response = client.post("/", files={"sql": ("query.sql", b"SELECT 3 AS three", "text/plain")})
        assert response.json() == [{"three": 3}]

    def test_empty_query(self, client: TestClient) -> None:
        response = client.post("/", json={"sql": ""})
        assert response.status_code == 400
        assert response.json() == {"error": "empty query"}

        response = client.post("/", content=b"", headers={"content-type": "application/json"})
        assert response.status_code == 400
        assert response.json() == {"error": "empty query"}

    def test_unknown_query_type(self, client: TestClient) -> None:
        response = client.post("/", json={"sql": "VACUUM"})
        assert response.status_code == 400
        assert response.json() == {"error": "unknown query type"}

    def test_disabled(self, make_client: Callable[..., TestClient]) -> None:
        client = make_client(raw_queries_enabled=False)
        response = client.post("/", json={"sql": "SELECT 1"})
        assert response.status_code == 400
        assert response.json() == {"error": "invalid raw query request"}

    def test_get_on_base_url(self, client: TestClient) -> None:
        response = client.get("/")
        assert response.status_code == 400
        assert response.json() == {"error": "invalid raw query request"}


# ============================================================================
# URL Prefix, Health and Write Accounting
# ============================================================================


class TestApplication:
    def test_url_prefix(self, make_client: Callable[..., TestClient]) -> None:
        client = make_client(url_prefix="api")
        assert client.post("/api/products", json=WIDGET).status_code == 200
        assert len(client.get("/api/products").json()) == 1
        assert client.post("/api/", json={"sql": "SELECT 1 AS one"}).json() == [{"one": 1}]
        assert client.get("/products").status_code == 404

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_successful_writes_are_counted(self, client: TestClient) -> None:
        ctx = client.app.state.context
        client.post("/products", json=WIDGET)
        client.put("/products/1", json={"price": 1})
        client.post("/", json={"sql": "UPDATE products SET price = 2"})
        client.get("/products")
        client.post("/products", json={"colour": "red"})
        assert ctx.writes == 3

    def test_backup_on_shutdown(self, make_client: Callable[..., TestClient], tmp_path) -> None:
        backup_path = tmp_path / "shutdown-backup.db"
        client = make_client(sqlite_backup=str(backup_path))
        client.post("/products", json=WIDGET)
        client.__exit__(None, None, None)
        assert backup_path.is_file()

        restored = make_client(dsn=":memory:", sqlite_backup=str(backup_path))
        assert restored.get("/products").json() == [{"id": 1, **WIDGET}]


# ============================================================================
# Client Disconnect
# ============================================================================

ENDLESS_SELECT = (
    "SELECT * FROM (WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) "
    "SELECT count(*) AS n FROM c WHERE x < 0)"
)


class TestClientDisconnect:
    """A client leaving mid-query cancels the statement."""

    async def test_disconnect_interrupts_query(self, db_path: Path) -> None:
        config = SqldConfig(database_type="sqlite3", dsn=str(db_path), raw_queries_enabled=True)
        app = create_app(config, run_maintenance=False)
        backend = app.state.context.backend
        await backend.connect(config.connection_config())

        body = json.dumps({"sql": ENDLESS_SELECT}).encode()
        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "POST",
            "scheme": "http",
            "path": "/",
            "raw_path": b"/",
            "root_path": "",
            "query_string": b"",
            "headers": [
                (b"host", b"testserver"),
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode()),
            ],
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }
        pending = [{"type": "http.request", "body": body, "more_body": False}]

        async def receive() -> dict[str, Any]:
            if pending:
                return pending.pop(0)
            await asyncio.sleep(0.2)
            return {"type": "http.disconnect"}

        sent: list[dict[str, Any]] = []

        async def send(message: dict[str, Any]) -> None:
            sent.append(message)

        try:
            await asyncio.wait_for(app(scope, receive, send), 10)
            assert sent[0]["type"] == "http.response.start"
            assert sent[0]["status"] == CLIENT_CLOSED_REQUEST

            # The interrupted statement frees the connection
            result = await asyncio.wait_for(backend.query("SELECT 1"), 5)
            assert result.rows == [(1,)]
        finally:
            await backend.disconnect()
