"""Request logging.

Every HTTP response, success or error, is logged as
``<status> <method> <url> <elapsed>`` on the ``sqld.request`` logger.
"""

from __future__ import annotations

import logging
import sys
import time

from starlette.types import ASGIApp, Message, Receive, Scope, Send

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def format_elapsed(seconds: float) -> str:
    """Format a duration with a unit matching its magnitude (µs, ms or s)."""
    if seconds < 1e-3:
        return f"{seconds * 1e6:.0f}µs"
    if seconds < 1:
        return f"{seconds * 1e3:.2f}ms"
    return f"{seconds:.2f}s"


def resolve_log_level(level_name: str | None, debug: bool = False) -> int:
    """Map a level name onto a logging level.

    Unknown names fall back to INFO with a warning on stderr; ``debug`` forces
    DEBUG.
    """
    if debug:
        return logging.DEBUG
    level_str = (level_name or "INFO").upper()
    if level_str not in VALID_LOG_LEVELS:
        print(
            f"Warning: Invalid SQLD_LOG_LEVEL '{level_str}'. "
            f"Valid levels: {', '.join(sorted(VALID_LOG_LEVELS))}. "
            "Using INFO.",
            file=sys.stderr,
        )
        level_str = "INFO"
    return getattr(logging, level_str)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure root logging to stderr."""
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


class RequestLoggingMiddleware:
    """ASGI middleware logging status, method, URL and elapsed time.

    Implemented at the raw ASGI level so the wrapped endpoint still receives
    ``http.disconnect`` messages from the server.
    """

    def __init__(self, app: ASGIApp, logger_name: str = "sqld.request"):
        self.app = app
        self._logger = logging.getLogger(logger_name)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            url = scope.get("path", "")
            query = scope.get("query_string", b"")
            if query:
                url = f"{url}?{query.decode('latin-1')}"
            self._logger.info(
                "%d %s %s %s",
                status_code,
                scope.get("method", ""),
                url,
                format_elapsed(time.perf_counter() - start),
            )


__all__ = [
    "RequestLoggingMiddleware",
    "format_elapsed",
    "resolve_log_level",
    "setup_logging",
]
