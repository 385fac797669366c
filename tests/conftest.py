"""Shared test configuration for sqld tests.

Provides:
- A seeded SQLite database file per test
- An application factory running the full Starlette app against it
- A ready-made TestClient with raw queries enabled
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from starlette.testclient import TestClient

from sqld.config import SqldConfig
from sqld.server import create_app

SCHEMA = """
CREATE TABLE products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    category TEXT,
    price REAL
);
CREATE TABLE notes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT,
    body TEXT
);
"""


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """SQLite database file with the test schema and no rows."""
    path = tmp_path / "sqld.db"
    conn = sqlite3.connect(path)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def make_client(db_path: Path) -> Iterator[Callable[..., TestClient]]:
    """Factory for started TestClients; extra kwargs override config fields."""
    clients: list[TestClient] = []

    def _make(**overrides: Any) -> TestClient:
        settings: dict[str, Any] = {
            "database_type": "sqlite3",
            "dsn": str(db_path),
            "raw_queries_enabled": True,
        }
        settings.update(overrides)
        app = create_app(SqldConfig(**settings), run_maintenance=False)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    """TestClient with raw queries enabled, served at the root URL."""
    return make_client()
