"""Service configuration.

Configuration is read from environment variables, after overlaying a ``.env``
file from the working directory when one exists (values in the file win over
the process environment).

Environment Variables:
    DB_TYPE: Database type: sqlite3 (default), mysql, postgres
    DSN: Full data source name (SQLite: database file path)
    DB_USER / DB_PASS / DB_HOST / DB_NAME: Discrete connection settings
    DB_SCHEMA: PostgreSQL schema used to qualify table names
    PORT: HTTP port (default: 8080)
    URL: URL prefix (default: /)
    ALLOW_RAW: Enable raw SQL queries on the base URL (default: false)
    SQLITE_BACKUP: Backup file for in-memory SQLite databases
    HEALTH_CHECK_URL: URL polled by the self health check
    HEALTH_CHECK_INTERVAL: Liveness / self health check interval in minutes (default: 1)
    BACKUP_INTERVAL: SQLite auto backup interval in minutes (default: 5)
    QUERY_TIMEOUT: Statement timeout in seconds (default: 30)
    POOL_SIZE: Connection pool size for remote databases (default: 5)
    DEBUG: Verbose logging (default: false)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .engine.dialect import parse_engine
from .engine.sql import ConnectionConfig, DatabaseEngine

logger = logging.getLogger(__name__)

_TRUTHY = {"true", "1", "t", "yes", "y", "on"}
_FALSY = {"false", "0", "f", "no", "n", "off"}

_DEFAULT_HOSTS = {
    DatabaseEngine.POSTGRES: "localhost:5432",
    DatabaseEngine.MYSQL: "localhost:3306",
}


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    return env.get(name, default)


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(env[name])
    except (KeyError, ValueError):
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name, "").strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    return default


class SqldConfig(BaseModel):
    """Runtime configuration of the sqld service."""

    database_type: str = Field(default="sqlite3", description="sqlite3, mysql or postgres")
    dsn: str = Field(default="", description="Data source name; wins over discrete settings")
    user: str = Field(default="root", description="Database username")
    password: str = Field(default="", description="Database password")
    host: str = Field(default="", description="Database host, optionally host:port")
    database_name: str = Field(default="", description="Database name")
    schema_name: str = Field(default="", description="PostgreSQL schema for table names")
    port: int = Field(default=8080, description="HTTP port")
    url_prefix: str = Field(default="/", description="URL prefix of the table routes")
    raw_queries_enabled: bool = Field(default=False, description="Allow raw SQL queries")
    sqlite_backup: str = Field(default="", description="SQLite backup file")
    health_check_url: str = Field(default="", description="Self health check URL")
    health_check_interval: int = Field(default=1, ge=1, description="Minutes between checks")
    backup_interval: int = Field(default=5, ge=1, description="Minutes between SQLite backups")
    query_timeout: float = Field(default=30, gt=0, description="Statement timeout in seconds")
    pool_size: int = Field(default=5, ge=1, description="Remote connection pool size")
    debug: bool = Field(default=False, description="Verbose logging")

    @field_validator("url_prefix")
    @classmethod
    def _normalize_url_prefix(cls, value: str) -> str:
        """Make sure the prefix starts and ends with a slash."""
        if not value.endswith("/"):
            value += "/"
        if not value.startswith("/"):
            value = "/" + value
        return value

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        env_file: str | Path | None = ".env",
    ) -> SqldConfig:
        """Build configuration from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ`` (no .env overlay)
            env_file: .env file overlaid onto ``os.environ`` when present

        Returns:
            SqldConfig
        """
        if environ is None:
            if env_file and Path(env_file).is_file():
                logger.info(f"Loading {env_file} file...")
                load_dotenv(env_file, override=True)
            environ = os.environ

        env = environ
        return cls(
            raw_queries_enabled=_env_bool(env, "ALLOW_RAW", False),
            dsn=_env_str(env, "DSN", ""),
            user=_env_str(env, "DB_USER", "root"),
            password=_env_str(env, "DB_PASS", ""),
            host=_env_str(env, "DB_HOST", ""),
            database_type=_env_str(env, "DB_TYPE", "sqlite3"),
            database_name=_env_str(env, "DB_NAME", ""),
            schema_name=_env_str(env, "DB_SCHEMA", ""),
            port=_env_int(env, "PORT", 8080),
            url_prefix=_env_str(env, "URL", "/"),
            sqlite_backup=_env_str(env, "SQLITE_BACKUP", ""),
            health_check_url=_env_str(env, "HEALTH_CHECK_URL", ""),
            health_check_interval=max(1, _env_int(env, "HEALTH_CHECK_INTERVAL", 1)),
            backup_interval=max(1, _env_int(env, "BACKUP_INTERVAL", 5)),
            query_timeout=max(1, _env_int(env, "QUERY_TIMEOUT", 30)),
            pool_size=max(1, _env_int(env, "POOL_SIZE", 5)),
            debug=_env_bool(env, "DEBUG", False),
        )

    @property
    def engine(self) -> DatabaseEngine:
        """Database engine (raises ConfigurationError for unsupported types)."""
        return parse_engine(self.database_type)

    def can_backup(self) -> bool:
        """Check whether SQLite backup/restore is configured."""
        return self.engine == DatabaseEngine.SQLITE and bool(self.sqlite_backup)

    def connection_config(self) -> ConnectionConfig:
        """Derive the backend connection configuration.

        Raises:
            ConfigurationError: If the database type is not supported
        """
        engine = self.engine
        if engine == DatabaseEngine.SQLITE:
            return ConnectionConfig(
                engine=engine,
                path=self.dsn or self.database_name or ":memory:",
                timeout=self.query_timeout,
            )

        if self.dsn:
            return ConnectionConfig(
                engine=engine,
                dsn=self.dsn,
                timeout=self.query_timeout,
                pool_size=self.pool_size,
            )

        host, _, port = (self.host or _DEFAULT_HOSTS[engine]).partition(":")
        return ConnectionConfig(
            engine=engine,
            host=host or "localhost",
            port=int(port) if port.isdigit() else None,
            database=self.database_name,
            username=self.user or "root",
            password=self.password,
            timeout=self.query_timeout,
            pool_size=self.pool_size,
        )


__all__ = ["SqldConfig"]
