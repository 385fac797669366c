"""Response serialization: JSON or delimited text.

The ``Accept`` header selects the output format: ``text/csv`` and
``text/tsv`` switch to delimited text, everything else gets JSON.

JSON output is the payload itself (rows as a top-level array, a created row or
``{"rows_affected": n}`` as an object); errors are ``{"error": "<message>"}``.
Delimited output puts the first row's keys on a header line and quotes a field
only when it contains the delimiter, a quote character or a line break.
"""

from __future__ import annotations

import csv
import io
import json
import math
from collections.abc import Mapping, Sequence
from decimal import Decimal
from enum import Enum
from typing import Any

from starlette.responses import JSONResponse, Response

from .exceptions import SqldError
from .models import ExecResult, Row


class OutputFormat(Enum):
    """Response body format."""

    JSON = "application/json"
    CSV = "text/csv"
    TSV = "text/tab-separated-values"

    @property
    def delimiter(self) -> str:
        return "\t" if self is OutputFormat.TSV else ","


_ACCEPT_FORMATS = {
    "text/csv": OutputFormat.CSV,
    "text/tsv": OutputFormat.TSV,
    "text/tab-separated-values": OutputFormat.TSV,
}


def negotiate(accept: str | None) -> OutputFormat:
    """Pick the output format from an ``Accept`` header value."""
    for part in (accept or "").split(","):
        media_type = part.split(";", 1)[0].strip().lower()
        fmt = _ACCEPT_FORMATS.get(media_type)
        if fmt is not None:
            return fmt
    return OutputFormat.JSON


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        if not value.is_finite():
            return None
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class SqldJSONResponse(JSONResponse):
    """JSONResponse that also encodes Decimal values as numbers."""

    def render(self, content: Any) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
            default=_json_default,
        ).encode("utf-8")


def format_field(value: Any) -> str:
    """Render one value as delimited-text field content (before quoting)."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _delimited(header: Sequence[str], lines: Sequence[Sequence[Any]], delimiter: str) -> str:
    buffer = io.StringIO()
    writer = csv.writer(
        buffer,
        delimiter=delimiter,
        quotechar='"',
        doublequote=True,
        quoting=csv.QUOTE_MINIMAL,
        lineterminator="\n",
    )
    writer.writerow(header)
    for line in lines:
        writer.writerow([format_field(v) for v in line])
    return buffer.getvalue()


def render_delimited(data: Any, delimiter: str = ",") -> str:
    """Render a query outcome as delimited text.

    - rows: header from the first row's keys, one line per row
    - empty or None: empty body
    - ExecResult: ``rows_affected`` header and the count
    - single row mapping: header and one line
    """
    if data is None:
        return ""
    if isinstance(data, ExecResult):
        return _delimited(["rows_affected"], [[data.rows_affected]], delimiter)
    if isinstance(data, Mapping):
        keys = list(data.keys())
        return _delimited(keys, [[data[k] for k in keys]], delimiter)
    if not data:
        return ""
    keys = list(data[0].keys())
    return _delimited(keys, [[row.get(k) for k in keys] for row in data], delimiter)


def _finite(value: Any) -> Any:
    """Replace NaN and infinities, which JSON cannot represent, with null."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, Mapping):
        return {k: _finite(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_finite(v) for v in value]
    return value


def _to_json(data: Any) -> Any:
    if data is None:
        return []
    if isinstance(data, ExecResult):
        return data.model_dump()
    return _finite(data)


def render(data: list[Row] | Row | ExecResult | None, fmt: OutputFormat) -> Response:
    """Build the 200 response for a successful query outcome."""
    if fmt is OutputFormat.JSON:
        return SqldJSONResponse(_to_json(data), status_code=200)
    return Response(render_delimited(data, fmt.delimiter), status_code=200, media_type=fmt.value)


def render_error(error: SqldError, fmt: OutputFormat) -> Response:
    """Build the error response; the status mirrors the error's code."""
    if fmt is OutputFormat.JSON:
        return SqldJSONResponse({"error": error.message}, status_code=error.status_code)
    body = _delimited(["error"], [[error.message]], fmt.delimiter)
    return Response(body, status_code=error.status_code, media_type=fmt.value)


__all__ = [
    "OutputFormat",
    "SqldJSONResponse",
    "format_field",
    "negotiate",
    "render",
    "render_delimited",
    "render_error",
]
