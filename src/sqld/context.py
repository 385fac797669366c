"""Shared application context.

This module contains the context type created during application startup and
handed explicitly to the route endpoints and maintenance tasks, separated to
avoid circular imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .config import SqldConfig
from .engine import DialectPolicy, QueryHandler
from .engine.sql import DatabaseBackendBase


@dataclass
class AppContext:
    """Application context containing shared resources for request handling.

    The context is created once by the app factory and stored on
    ``app.state.context``.
    """

    config: SqldConfig
    policy: DialectPolicy
    backend: DatabaseBackendBase
    handler: QueryHandler = field(init=False)
    writes: int = 0  # Successful writes since the last backup

    def __post_init__(self) -> None:
        self.handler = QueryHandler(self.policy, self.backend, on_write=self.record_write)

    def record_write(self) -> None:
        """Count one successful write statement."""
        self.writes += 1

    def take_writes(self) -> int:
        """Return the write count and reset it."""
        count, self.writes = self.writes, 0
        return count


__all__ = ["AppContext"]
