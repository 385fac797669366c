"""Per-engine SQL dialect policy.

A ``DialectPolicy`` answers every dialect question the query builder has:
placeholder style, identifier quoting, schema-qualified table names and a
couple of driver capabilities. Policies are resolved once at startup through
``resolve_dialect`` and are immutable afterwards.

Example:
    policy = resolve_dialect("postgres", schema_name="sales")
    policy.placeholder(0)            # "$1"
    policy.table_name("Orders")      # 'sales."Orders"'
    policy.quote_identifier("name", force=True)  # '"name"'
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from .exceptions import ConfigurationError
from .sql.backend import DatabaseEngine

# Identifiers matching these patterns are safe to emit unquoted
_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PLAIN_LOWER_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

# PostgreSQL search_path default; never used as a qualifier
_DEFAULT_PG_SCHEMA = "public"

_ENGINE_ALIASES: dict[str, DatabaseEngine] = {
    "mysql": DatabaseEngine.MYSQL,
    "mariadb": DatabaseEngine.MYSQL,
    "postgres": DatabaseEngine.POSTGRES,
    "postgresql": DatabaseEngine.POSTGRES,
    "sqlite3": DatabaseEngine.SQLITE,
    "sqlite": DatabaseEngine.SQLITE,
}


@dataclass(frozen=True)
class DialectPolicy:
    """Immutable description of one SQL dialect.

    Attributes:
        engine: Database engine the policy describes
        paramstyle: DB-API paramstyle of the driver ("qmark", "numeric", "format")
        quote_char: Identifier quote character
        schema_name: Configured schema (only honoured by PostgreSQL)
        supports_write_limit: Whether UPDATE/DELETE accept a LIMIT clause
        reports_last_insert_id: Whether the driver reliably exposes generated ids
        unbounded_limit: LIMIT value meaning "no limit", for engines that only
            accept OFFSET after a LIMIT
    """

    engine: DatabaseEngine
    paramstyle: str
    quote_char: str
    schema_name: str = ""
    supports_write_limit: bool = False
    reports_last_insert_id: bool = False
    unbounded_limit: str | None = None

    def placeholder(self, index: int) -> str:
        """Get the bind placeholder for the 0-based parameter ``index``."""
        if self.paramstyle == "numeric":
            return f"${index + 1}"
        if self.paramstyle == "format":
            return "%s"
        return "?"

    def needs_quoting(self, name: str) -> bool:
        """Check whether ``name`` must be quoted to be used as an identifier."""
        if self.engine == DatabaseEngine.POSTGRES:
            # Unquoted identifiers fold to lower case in PostgreSQL
            return not _PLAIN_LOWER_IDENTIFIER.match(name)
        return not _PLAIN_IDENTIFIER.match(name)

    def quote_identifier(self, name: str, force: bool = False) -> str:
        """Quote an identifier, doubling any embedded quote character.

        Args:
            name: Raw identifier
            force: Quote even when the identifier is plain

        Returns:
            Identifier safe to concatenate into SQL text
        """
        if not force and not self.needs_quoting(name):
            return name
        q = self.quote_char
        return f"{q}{name.replace(q, q + q)}{q}"

    def table_name(self, table: str) -> str:
        """Build the (optionally schema-qualified) table reference."""
        quoted = self.quote_identifier(table)
        if self.engine == DatabaseEngine.POSTGRES and self.schema_name not in (
            "",
            _DEFAULT_PG_SCHEMA,
        ):
            return f"{self.quote_identifier(self.schema_name)}.{quoted}"
        return quoted

    def escape_literal_text(self, fragment: str) -> str:
        """Escape a SQL fragment that is concatenated verbatim.

        The ``format`` paramstyle interpolates the statement with ``%``, so a
        literal percent sign has to be doubled.
        """
        if self.paramstyle == "format":
            return fragment.replace("%", "%%")
        return fragment


_POLICIES: dict[DatabaseEngine, DialectPolicy] = {
    DatabaseEngine.MYSQL: DialectPolicy(
        engine=DatabaseEngine.MYSQL,
        paramstyle="format",
        quote_char="`",
        supports_write_limit=True,
        reports_last_insert_id=True,
        unbounded_limit="18446744073709551615",
    ),
    DatabaseEngine.POSTGRES: DialectPolicy(
        engine=DatabaseEngine.POSTGRES,
        paramstyle="numeric",
        quote_char='"',
    ),
    DatabaseEngine.SQLITE: DialectPolicy(
        engine=DatabaseEngine.SQLITE,
        paramstyle="qmark",
        quote_char='"',
        reports_last_insert_id=True,
        unbounded_limit="-1",
    ),
}


def parse_engine(database_type: str) -> DatabaseEngine:
    """Map a configured database type onto a ``DatabaseEngine``.

    Raises:
        ConfigurationError: If the type is not supported
    """
    engine = _ENGINE_ALIASES.get(database_type.strip().lower())
    if engine is None:
        raise ConfigurationError(
            f"Unsupported database type {database_type!r}. "
            f"Supported: {', '.join(e.value for e in DatabaseEngine)}"
        )
    return engine


def resolve_dialect(database_type: str, schema_name: str = "") -> DialectPolicy:
    """Resolve the dialect policy for a configured database type.

    Args:
        database_type: "mysql", "postgres" or "sqlite3" (common aliases accepted)
        schema_name: Schema used to qualify PostgreSQL table names

    Returns:
        DialectPolicy for the engine

    Raises:
        ConfigurationError: If the database type is not supported
    """
    engine = parse_engine(database_type)
    base = _POLICIES[engine]
    if engine != DatabaseEngine.POSTGRES or not schema_name:
        return base
    return replace(base, schema_name=schema_name)


__all__ = ["DialectPolicy", "parse_engine", "resolve_dialect"]
