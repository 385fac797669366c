"""Row materialization: positional driver rows to column-name mappings.

Drivers disagree on how they hand back textual data (MySQL returns BINARY and
BLOB columns as ``bytes``, SQLite returns BLOBs as ``bytes``, PostgreSQL
returns ``bytea`` as ``bytes``). Byte sequences are decoded as UTF-8 text so
every value is representable in JSON and CSV output.
"""

from __future__ import annotations

import math
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from .models import Row
from .sql.backend import QueryResult


def normalize_value(value: Any) -> Any:
    """Convert one driver value into a serializable scalar.

    - bytes, bytearray, memoryview: UTF-8 text (undecodable bytes replaced)
    - datetime, date, time: ISO 8601 text
    - UUID: canonical text
    - NaN and infinite float/Decimal: None
    - anything else (str, int, float, Decimal, bool, None): unchanged
    """
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, Decimal) and not value.is_finite():
        return None
    return value


def materialize(result: QueryResult) -> list[Row]:
    """Turn a fetched result into a list of rows.

    Columns are enumerated once; each positional row is zipped with them.
    Duplicate column names keep the last value.

    Args:
        result: Fully fetched result of a read statement

    Returns:
        Rows in result order (empty list when there are none)
    """
    columns = list(result.columns)
    rows: list[Row] = []
    for record in result.rows:
        rows.append({col: normalize_value(val) for col, val in zip(columns, record, strict=False)})
    return rows


__all__ = ["materialize", "normalize_value"]
