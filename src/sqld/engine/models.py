"""Result types shared by the query paths and the response serializer."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

# One materialized result row: column name -> scalar value
Row = dict[str, Any]


class ExecResult(BaseModel):
    """Outcome of a write statement."""

    model_config = ConfigDict(frozen=True)

    rows_affected: int


__all__ = ["ExecResult", "Row"]
