"""Error taxonomy for sqld.

Two families live here:

Request errors (``SqldError``) carry the HTTP status they are rendered with:
    SqldError (base)
    ├── BadRequest (400: malformed input, build failures, rejected statements)
    ├── NotFound (404: reserved)
    ├── MethodNotAllowed (405)
    ├── InternalError (500)
    └── ServiceUnavailable (503: database unreachable or too slow)

Driver errors (``SqlError``) are raised by the database backends and translated
into request errors by the handlers:
    SqlError (base)
    ├── SqlConnectionError
    ├── SqlQueryError
    └── SqlTimeoutError

``ConfigurationError`` is raised at startup only and never reaches a client.
"""

from __future__ import annotations


class SqldError(Exception):
    """Base exception for errors that are reported to the HTTP client.

    Attributes:
        message: Human-readable message rendered in the ``error`` field
        status_code: HTTP status code of the error response
    """

    status_code: int = 500

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, status_code={self.status_code})"


class BadRequest(SqldError):  # noqa: N818
    """Malformed request, invalid JSON, rejected statement or disabled capability."""

    status_code = 400


class NotFound(SqldError):  # noqa: N818
    """Resource not found (no core path raises this yet)."""

    status_code = 404


class MethodNotAllowed(SqldError):  # noqa: N818
    """HTTP verb not supported on a table path."""

    status_code = 405

    def __init__(self, message: str = "MethodNotAllowed") -> None:
        super().__init__(message)


class InternalError(SqldError):  # noqa: N818
    """Unexpected failure inside the service."""

    status_code = 500


class ServiceUnavailable(SqldError):  # noqa: N818
    """Database unreachable or statement exceeded the configured timeout."""

    status_code = 503


class ConfigurationError(Exception):
    """Invalid startup configuration (e.g. unsupported database type)."""

    pass


# ============================================================================
# Driver-level errors
# ============================================================================


class SqlError(Exception):
    """Base exception for database backend errors."""

    pass


class SqlConnectionError(SqlError):
    """Failed to establish or keep a database connection."""

    pass


class SqlQueryError(SqlError):
    """The database rejected the statement."""

    pass


class SqlTimeoutError(SqlError):
    """Statement exceeded the configured timeout."""

    pass


def to_request_error(error: SqlError) -> SqldError:
    """Translate a backend error into the error reported to the client."""
    if isinstance(error, (SqlConnectionError, SqlTimeoutError)):
        return ServiceUnavailable(str(error))
    return BadRequest(str(error))


__all__ = [
    "SqldError",
    "BadRequest",
    "NotFound",
    "MethodNotAllowed",
    "InternalError",
    "ServiceUnavailable",
    "ConfigurationError",
    "SqlError",
    "SqlConnectionError",
    "SqlQueryError",
    "SqlTimeoutError",
    "to_request_error",
]
