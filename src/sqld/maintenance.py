"""Background maintenance tasks.

Three periodic tasks run for the lifetime of the application:

- liveness: ping the database; a failed ping is fatal
- self health check: GET ``health_check_url``; a failure is retried once
  after a short backoff, a second failure is fatal
- auto backup: copy an SQLite database to ``sqlite_backup`` when writes
  happened since the previous backup

A fatal condition invokes the fatal handler, which by default raises SIGTERM so
that the server shuts down gracefully (running the final backup on the way).

Usage:
    tasks = MaintenanceTasks(ctx)
    await tasks.start()
    ...
    await tasks.stop()
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from pathlib import Path

import httpx

from .context import AppContext
from .engine import SqlError
from .engine.sql import SqliteBackend

logger = logging.getLogger(__name__)

HEALTH_CHECK_RETRY_DELAY = 5.0  # seconds
HEALTH_CHECK_TIMEOUT = 10.0  # seconds


def request_shutdown() -> None:
    """Default fatal handler: ask the server for a graceful shutdown."""
    signal.raise_signal(signal.SIGTERM)


async def backup_database(ctx: AppContext) -> bool:
    """Copy the SQLite database to the configured backup file.

    Returns:
        True if a backup was taken, False if backups are not configured

    Raises:
        SqlError: If the backup fails
    """
    if not ctx.config.can_backup() or not isinstance(ctx.backend, SqliteBackend):
        return False
    logger.info("Backing up database...")
    await ctx.backend.backup_to(ctx.config.sqlite_backup)
    logger.info("Backup completed.")
    return True


async def restore_database(ctx: AppContext) -> bool:
    """Load the configured SQLite backup file into the live database.

    A missing backup file is not an error (nothing to restore yet).

    Returns:
        True if a backup was restored

    Raises:
        SqlError: If the backup file cannot be read
    """
    if not ctx.config.can_backup() or not isinstance(ctx.backend, SqliteBackend):
        return False
    backup_path = Path(ctx.config.sqlite_backup)
    if not backup_path.is_file():
        logger.info(f"No backup found at {backup_path}, starting with a fresh database")
        return False
    logger.info(f"Restoring database from {backup_path}...")
    await ctx.backend.restore_from(str(backup_path))
    logger.info("Restore completed.")
    return True


class MaintenanceTasks:
    """Periodic liveness, self health check and backup tasks.

    Intervals default to the configured minutes and can be overridden in
    seconds (tests use sub-second intervals).
    """

    def __init__(
        self,
        ctx: AppContext,
        on_fatal: Callable[[], None] = request_shutdown,
        health_interval: float | None = None,
        backup_interval: float | None = None,
        retry_delay: float = HEALTH_CHECK_RETRY_DELAY,
    ):
        self.ctx = ctx
        self._on_fatal = on_fatal
        self._health_interval = health_interval or ctx.config.health_check_interval * 60
        self._backup_interval = backup_interval or ctx.config.backup_interval * 60
        self._retry_delay = retry_delay
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background tasks that apply to the configuration."""
        if self._running:
            logger.warning("Maintenance tasks already running")
            return

        self._running = True
        self._tasks.append(asyncio.create_task(self._every(self._health_interval, self.check_database)))
        if self.ctx.config.health_check_url:
            self._tasks.append(asyncio.create_task(self._every(self._health_interval, self.check_health_url)))
        if self.ctx.config.can_backup():
            self._tasks.append(asyncio.create_task(self._every(self._backup_interval, self.auto_backup)))
        logger.info(f"Maintenance started with {len(self._tasks)} task(s)")

    async def stop(self) -> None:
        """Cancel the background tasks and wait for them to finish."""
        if not self._running:
            return

        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        logger.info("Maintenance stopped")

    async def check_database(self) -> bool:
        """Ping the database; a failure is fatal."""
        try:
            await self.ctx.backend.ping()
        except SqlError as e:
            logger.error(f"Database connection lost: {e}")
            self._on_fatal()
            return False
        return True

    async def check_health_url(self) -> bool:
        """GET the self health check URL, retrying once before giving up."""
        url = self.ctx.config.health_check_url
        async with httpx.AsyncClient(timeout=HEALTH_CHECK_TIMEOUT) as client:
            if await self._probe(client, url):
                return True
            await asyncio.sleep(self._retry_delay)
            if await self._probe(client, url):
                return True
        logger.error(f"Self health check failed: {url}")
        self._on_fatal()
        return False

    async def auto_backup(self) -> bool:
        """Back up the database when writes happened since the last backup."""
        if self.ctx.writes == 0:
            return False
        writes = self.ctx.take_writes()
        logger.debug(f"{writes} write(s) since the last backup")
        try:
            return await backup_database(self.ctx)
        except SqlError as e:
            logger.error(f"Unable to backup database: {e}")
            return False

    async def _probe(self, client: httpx.AsyncClient, url: str) -> bool:
        try:
            await client.get(url)
        except httpx.HTTPError as e:
            logger.warning(f"Self health check request failed: {e}")
            return False
        return True

    async def _every(self, interval: float, check: Callable[[], Awaitable[bool]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await check()
            except Exception as e:
                logger.error(f"Maintenance task {check.__name__} failed: {e}", exc_info=True)


__all__ = ["MaintenanceTasks", "backup_database", "request_shutdown", "restore_database"]
