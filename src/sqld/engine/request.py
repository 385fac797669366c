"""Request decomposition: URL path and query string to table, row id and filters.

The decomposer performs no escaping: identifiers and values are handed to the
query builder exactly as the client sent them.

Example:
    decompose("/api/products/7", [("category", "Test"), ("__limit__", "5")], "/api/")
    # DecomposedRequest(table="products", row_id="7",
    #                   filters={"category": ["Test"]}, limit=5, ...)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .exceptions import BadRequest

LIMIT_KEY = "__limit__"
OFFSET_KEY = "__offset__"
ORDER_BY_KEY = "__order_by__"

CONTROL_KEYS = frozenset({LIMIT_KEY, OFFSET_KEY, ORDER_BY_KEY})


@dataclass(frozen=True)
class DecomposedRequest:
    """Table-addressing request, ready for the query builder.

    Attributes:
        table: Table name (first path segment)
        row_id: Row identifier (second path segment), an implicit ``id`` filter
        filters: Column name -> values, in order of first appearance
        limit: Parsed ``__limit__`` (None when absent or not an integer)
        offset: Parsed ``__offset__`` (None when absent or not an integer)
        order_by: Raw ``__order_by__`` terms, in request order
    """

    table: str
    row_id: str | None = None
    filters: dict[str, list[str]] = field(default_factory=dict)
    limit: int | None = None
    offset: int | None = None
    order_by: list[str] = field(default_factory=list)


def strip_prefix(path: str, url_prefix: str) -> str:
    """Remove the configured URL prefix (which always ends with "/")."""
    if path.startswith(url_prefix):
        return path[len(url_prefix) :]
    if path == url_prefix.rstrip("/"):
        return ""
    return path.lstrip("/")


def _parse_count(value: str) -> int | None:
    """Parse a limit/offset value; anything but a non-negative integer is ignored."""
    try:
        count = int(value.strip())
    except ValueError:
        return None
    return count if count >= 0 else None


def decompose(
    path: str, query_items: Iterable[tuple[str, str]], url_prefix: str = "/"
) -> DecomposedRequest:
    """Split a request into table, row id, filters and control parameters.

    Args:
        path: Decoded request path
        query_items: Query string as ordered (key, value) pairs; keys may repeat
        url_prefix: Configured URL prefix

    Returns:
        DecomposedRequest

    Raises:
        BadRequest: If the path names no table
    """
    segments = strip_prefix(path, url_prefix).split("/")
    table = segments[0]
    if not table:
        raise BadRequest("missing table name")
    row_id = segments[1] if len(segments) > 1 and segments[1] else None

    filters: dict[str, list[str]] = {}
    limit: int | None = None
    offset: int | None = None
    limit_seen = offset_seen = False
    order_by: list[str] = []

    for key, value in query_items:
        if key == LIMIT_KEY:
            # Only the first value counts
            if not limit_seen:
                limit_seen = True
                limit = _parse_count(value)
        elif key == OFFSET_KEY:
            if not offset_seen:
                offset_seen = True
                offset = _parse_count(value)
        elif key == ORDER_BY_KEY:
            order_by.append(value)
        else:
            filters.setdefault(key, []).append(value)

    return DecomposedRequest(
        table=table,
        row_id=row_id,
        filters=filters,
        limit=limit,
        offset=offset,
        order_by=order_by,
    )


__all__ = [
    "CONTROL_KEYS",
    "LIMIT_KEY",
    "OFFSET_KEY",
    "ORDER_BY_KEY",
    "DecomposedRequest",
    "decompose",
    "strip_prefix",
]
