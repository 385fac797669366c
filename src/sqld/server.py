"""Starlette application for sqld.

This module builds the ASGI application and manages shared resources via the
lifespan context. Table routes live under the configured URL prefix; raw SQL
is posted to the prefix itself; ``/health`` is served at the root.

Structure:
- Lifespan context manager for resource initialization and cleanup
- Application context stored on ``app.state.context``
- Errors converted to responses in the route endpoint only
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response
from starlette.routing import Route

from .config import SqldConfig
from .context import AppContext
from .engine import (
    BadRequest,
    ConfigurationError,
    InternalError,
    MethodNotAllowed,
    SqldError,
    SqlError,
    decompose,
    negotiate,
    render,
    render_error,
    resolve_dialect,
)
from .engine.exceptions import to_request_error
from .engine.raw import extract_sql
from .engine.request import strip_prefix
from .engine.serializer import SqldJSONResponse
from .engine.sql import DatabaseBackendBase, create_backend
from .logging_utils import RequestLoggingMiddleware, resolve_log_level, setup_logging
from .maintenance import MaintenanceTasks, backup_database, restore_database

logger = logging.getLogger(__name__)

# Verbs routed to the query endpoint; anything else but these is answered by the
# router itself
ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]

# Status logged for requests whose client went away (nginx convention)
CLIENT_CLOSED_REQUEST = 499

# =============================================================================
# Route Endpoints
# =============================================================================


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def _until_disconnect(request: Request, work: Awaitable[Any]) -> Any:
    """Run ``work`` and cancel it when the client disconnects first.

    The request body must already be consumed.

    Raises:
        ClientDisconnect: If the client disconnected before ``work`` finished
    """
    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    if task.cancelled():
        raise ClientDisconnect()
    return task.result()


async def _dispatch(ctx: AppContext, request: Request) -> Any:
    config = ctx.config
    handler = ctx.handler
    path = request.url.path
    method = request.method

    if not strip_prefix(path, config.url_prefix):
        if config.raw_queries_enabled and method == "POST":
            return await handler.raw(await extract_sql(request))
        raise BadRequest("invalid raw query request")

    if method not in ("GET", "HEAD", "POST", "PUT", "DELETE"):
        raise MethodNotAllowed()

    parsed = decompose(path, request.query_params.multi_items(), config.url_prefix)
    if method in ("GET", "HEAD"):
        return await handler.read(parsed)
    if method == "POST":
        return await handler.create(
            parsed.table, request.headers.get("content-type"), await request.body()
        )
    if method == "PUT":
        return await handler.update(parsed, await request.body())
    return await handler.delete(parsed)


async def handle_query(request: Request) -> Response:
    """Serve table-addressing and raw SQL requests."""
    ctx: AppContext = request.app.state.context
    fmt = negotiate(request.headers.get("accept"))

    try:
        await request.body()
        outcome = await _until_disconnect(request, _dispatch(ctx, request))
        return render(outcome, fmt)
    except ClientDisconnect:
        logger.info(f"Client disconnected: {request.method} {request.url.path}")
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    except SqldError as e:
        return render_error(e, fmt)
    except SqlError as e:
        logger.debug(f"Database error: {e}")
        return render_error(to_request_error(e), fmt)
    except Exception as e:
        logger.exception(f"Unhandled error for {request.method} {request.url.path}: {e}")
        return render_error(InternalError("internal server error"), fmt)


async def health(request: Request) -> Response:
    """Report whether the database answers a ping."""
    ctx: AppContext = request.app.state.context
    try:
        await ctx.backend.ping()
    except SqlError as e:
        logger.warning(f"Health check failed: {e}")
        return SqldJSONResponse({"status": "unavailable", "error": str(e)}, status_code=503)
    return SqldJSONResponse({"status": "ok"})


# =============================================================================
# Application Factory and Lifespan
# =============================================================================


def create_app(
    config: SqldConfig | None = None,
    backend: DatabaseBackendBase | None = None,
    run_maintenance: bool = True,
) -> Starlette:
    """Build the sqld application.

    The dialect and connection settings are resolved here so that an invalid
    configuration fails before the server starts listening.

    Args:
        config: Service configuration (default: read from the environment)
        backend: Unconnected backend (default: one matching the database type)
        run_maintenance: Start the periodic maintenance tasks

    Returns:
        Starlette application with ``app.state.context`` set

    Raises:
        ConfigurationError: If the database type is not supported
    """
    config = config or SqldConfig.from_env()
    policy = resolve_dialect(config.database_type, config.schema_name)
    connection = config.connection_config()
    ctx = AppContext(config=config, policy=policy, backend=backend or create_backend(policy.engine))

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        """Connect the database, restore the backup and run maintenance."""
        logger.info(f"Connecting to {policy.engine.value} database...")
        await ctx.backend.connect(connection)
        await restore_database(ctx)

        tasks = MaintenanceTasks(ctx)
        if run_maintenance:
            await tasks.start()

        try:
            yield
        finally:
            logger.info("Shutting down...")
            await tasks.stop()
            try:
                await backup_database(ctx)
            except SqlError as e:
                logger.error(f"Unable to backup database: {e}")
            await ctx.backend.disconnect()
            logger.info("Database connection closed")

    app = Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route(config.url_prefix + "{path:path}", handle_query, methods=ROUTED_METHODS),
        ],
        middleware=[Middleware(RequestLoggingMiddleware)],
        lifespan=lifespan,
    )
    app.state.context = ctx
    return app


# =============================================================================
# Server Entry Point
# =============================================================================


def main() -> None:
    """Entry point for running the sqld server.

    This function is called when the server is run directly via:
    - python -m sqld
    - sqld (entry point configured in pyproject.toml)
    """
    config = SqldConfig.from_env()
    log_level = resolve_log_level(os.getenv("SQLD_LOG_LEVEL"), config.debug)
    setup_logging(log_level)

    try:
        app = create_app(config)
    except (ConfigurationError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logger.info(
        f"Starting sqld on port {config.port} "
        f"(database: {config.database_type}, url: {config.url_prefix}, "
        f"raw queries: {'enabled' if config.raw_queries_enabled else 'disabled'})"
    )

    try:
        uvicorn.run(
            app,
            host="0.0.0.0",
            port=config.port,
            log_level=logging.getLevelName(log_level).lower(),
            access_log=False,
        )
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
    except Exception as e:
        logger.exception(f"Server error: {e}")
        sys.exit(1)

    logger.info("Server shutdown complete")


__all__ = ["create_app", "handle_query", "health", "main"]
